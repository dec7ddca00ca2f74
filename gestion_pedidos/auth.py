from dataclasses import dataclass
from typing import Optional

from jose import JWTError, jwt

from gestion_pedidos import config


@dataclass(frozen=True)
class Caller:
    token: Optional[str] = None


def caller_from_header(authorization: Optional[str]) -> Caller:
    if not authorization or not authorization.lower().startswith("bearer "):
        return Caller()
    return Caller(token=authorization.split(None, 1)[1].strip())


class JWTAuthorizer:
    """``is_authorized(caller)`` for office routes.

    Tokens are issued elsewhere; here we only check the signature, expiry and
    that the ``role`` claim is one of the office roles.
    """

    def __init__(self, secret: str = None, algorithm: str = None, roles=None):
        self.secret = secret or config.JWT_SECRET
        self.algorithm = algorithm or config.JWT_ALGORITHM
        self.roles = set(roles if roles is not None else config.OFFICE_ROLES)

    def __call__(self, caller: Caller) -> bool:
        if caller is None or not caller.token:
            return False
        try:
            payload = jwt.decode(caller.token, self.secret, algorithms=[self.algorithm])
        except JWTError:
            return False
        return payload.get("role") in self.roles
