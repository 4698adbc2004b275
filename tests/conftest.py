"""Pytest fixtures for testing"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Generator
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from microlend.api.dependencies import get_clock
from microlend.api.main import create_app
from microlend.infrastructure.database.models import Base, User
from microlend.infrastructure.database.session import create_db_engine, get_db
from microlend.services.accounts import AccountService
from microlend.services.lifecycle import LoanLifecycle


class FrozenClock:
    """Controllable time source; call it to read, advance() to move forward"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(scope="session")
def engine(tmp_path_factory) -> Generator[Engine, None, None]:
    """SQLite file database under pytest's temporary directory"""
    db_path = tmp_path_factory.mktemp("db") / "test.db"
    engine = create_db_engine(f"sqlite:///{db_path}")
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine: Engine) -> Generator[Session, None, None]:
    """Create test schema and session"""
    Base.metadata.create_all(bind=engine)
    db = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2025, 1, 15, 10, 0, 0))


@pytest.fixture
def lifecycle(db: Session, clock: FrozenClock) -> LoanLifecycle:
    return LoanLifecycle(db, clock)


@pytest.fixture
def accounts(db: Session, clock: FrozenClock) -> AccountService:
    return AccountService(db, clock)


@pytest.fixture
def make_user(accounts: AccountService):
    """Factory: register a user, optionally verify and fund their wallet"""
    counter = {"n": 0}

    def factory(role: str = "borrower", verified: bool = True, wallet: Decimal = Decimal("0"), name: str = None) -> User:
        counter["n"] += 1
        user = accounts.register_user(
            name=name or f"{role.title()} {counter['n']}",
            email=f"{role}{counter['n']}@example.com",
            role=role,
        ).user
        if verified:
            accounts.set_verified(user.id, True)
        remaining = Decimal(wallet)
        while remaining > 0:
            chunk = min(remaining, Decimal("100000"))
            accounts.top_up(user.id, chunk)
            remaining -= chunk
        return user

    return factory


@pytest.fixture
def borrower(make_user) -> User:
    return make_user("borrower", name="Asha Borrower")


@pytest.fixture
def lender(make_user) -> User:
    return make_user("lender", wallet=Decimal("50000"), name="Ravi Lender")


@pytest.fixture
def admin(make_user) -> User:
    return make_user("admin", name="Admin One")


@pytest.fixture
def client(db: Session, clock: FrozenClock) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    return TestClient(app)
