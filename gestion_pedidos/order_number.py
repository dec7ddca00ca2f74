import uuid
from datetime import datetime, timezone

from gestion_pedidos import config


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OrderNumberGenerator:
    """Human readable order numbers: ``ORD-20240131-154502-9F3A1C``.

    The timestamp (UTC) tells operators when the order came in; the random
    suffix keeps concurrent orders apart without a central counter.
    Uniqueness is still enforced by the store.
    """

    def __init__(self, prefix: str = None, clock=_utc_now, suffix_length: int = 6):
        self.prefix = prefix if prefix is not None else config.ORDER_NUMBER_PREFIX
        self.clock = clock
        self.suffix_length = suffix_length

    def generate(self) -> str:
        stamp = self.clock().strftime("%Y%m%d-%H%M%S")
        suffix = uuid.uuid4().hex[: self.suffix_length].upper()
        return f"{self.prefix}-{stamp}-{suffix}"
