import uuid
from contextlib import contextmanager
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from halan.database import Base, get_db, get_session_scope
from halan.main import app
from halan.models import CourierSupervisor, Order, Role, User
from halan.schemas.order import OrderCreate
from halan.services import order_service
from halan.services.fleet_hub import FleetLocationHub, get_fleet_hub
from halan.services.scope_service import ActorContext
from halan.utils.security import create_access_token

PHONE = "+201001234567"
ADDRESS = "12 Nile Street, Zamalek, Cairo"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def hub():
    return FleetLocationHub()


class SessionTracker:
    """Session scope that counts how many sessions are still open"""

    def __init__(self, factory):
        self.factory = factory
        self.opened = 0
        self.open = 0

    @contextmanager
    def __call__(self):
        session = self.factory()
        self.opened += 1
        self.open += 1
        try:
            yield session
        finally:
            session.close()
            self.open -= 1


@pytest.fixture
def sessions(session_factory):
    return SessionTracker(session_factory)


@pytest.fixture
def client(db, hub, sessions):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_fleet_hub] = lambda: hub
    app.dependency_overrides[get_session_scope] = lambda: sessions
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make(role: Role, name: str = None, **fields) -> User:
        if role == Role.COURIER:
            fields.setdefault("is_available", True)
        user = User(name=name or f"{role.value}-{uuid.uuid4().hex[:6]}", role=role, **fields)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def assign(db):
    def _assign(courier: User, supervisor: User) -> None:
        db.add(CourierSupervisor(courier_id=courier.id, supervisor_id=supervisor.id))
        db.commit()
    return _assign


def actor_of(user: User) -> ActorContext:
    return ActorContext(role=user.role, id=user.id)


@pytest.fixture
def actor():
    return actor_of


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict:
        token = create_access_token({"sub": user.id, "role": user.role.value})
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def owner(make_user):
    return make_user(Role.OWNER, "Owner")


@pytest.fixture
def supervisor(make_user):
    return make_user(Role.SUPERVISOR, "Sara Supervisor")


@pytest.fixture
def courier(make_user, assign, supervisor):
    courier = make_user(Role.COURIER, "Karim Courier")
    assign(courier, supervisor)
    return courier


@pytest.fixture
def customer(make_user):
    return make_user(Role.CUSTOMER, "Mona Customer")


def order_payload(**overrides) -> OrderCreate:
    data = {
        "customer_name": "Mona",
        "customer_phone": PHONE,
        "delivery_address": ADDRESS,
        "items": [{"name": "Koshari", "quantity": 2, "unit_price": "40.00"}],
        "delivery_fee": "10.00",
    }
    data.update(overrides)
    return OrderCreate(**data)


@pytest.fixture
def make_order(db):
    def _make(by: User, **overrides) -> Order:
        return order_service.create_order(db, actor_of(by), order_payload(**overrides))
    return _make
