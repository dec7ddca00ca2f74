import os

# must be set before gestion_pedidos.database_sql builds its engine
os.environ["DATABASE_URL"] = "sqlite://"

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.orm import sessionmaker

from gestion_pedidos import config
from gestion_pedidos import main as pedidos_main
from gestion_pedidos.broadcaster import Broadcaster
from gestion_pedidos.database_sql import get_db, make_engine
from gestion_pedidos.models import Base
from gestion_pedidos.service import OrderLifecycleService
from gestion_pedidos.store import OrderStore


class RecordingObserver:
    def __init__(self):
        self.events = []

    def send(self, event):
        self.events.append(event)

    def kinds(self):
        return [e.kind for e in self.events]


def _order_payload(**overrides):
    payload = {
        "customerName": "Amina Yusuf",
        "phoneNumber": "555-0100",
        "address": "12 Market Street",
        "items": [{"name": "Gas cylinder 13kg", "quantity": 1, "price": 25.0}],
        "totalAmount": 25.0,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_order():
    return _order_payload


@pytest.fixture
def engine():
    eng = make_engine("sqlite://")
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def broadcaster():
    return Broadcaster()


@pytest.fixture
def recorder(broadcaster):
    observer = RecordingObserver()
    broadcaster.join(config.ADMIN_ROOM, observer)
    return observer


@pytest.fixture
def service(db, broadcaster):
    return OrderLifecycleService(OrderStore(db), broadcaster)


def make_token(role="admin", minutes=30):
    claims = {
        "sub": "office-1",
        "role": role,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=minutes),
    }
    return jwt.encode(claims, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


@pytest.fixture
def token_for():
    return make_token


@pytest.fixture
def office_token():
    return make_token()


@pytest.fixture
def office_headers(office_token):
    return {"Authorization": f"Bearer {office_token}"}


@pytest.fixture
def client(session_factory, broadcaster):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    pedidos_main.app.dependency_overrides[get_db] = override_get_db
    pedidos_main.app.dependency_overrides[pedidos_main.get_broadcaster] = (
        lambda: broadcaster
    )
    yield TestClient(pedidos_main.app)
    pedidos_main.app.dependency_overrides.clear()
