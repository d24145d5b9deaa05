from decimal import Decimal
from uuid import UUID

import pytest
from sqlmodel import Session

from ..core.config import Settings
from ..core.db import create_engine_for_url, init_db
from ..models import CreateAccountRequest, UserModel
from ..services import AccountService, SqlUserDirectory, TransactionCoordinator


@pytest.fixture
def engine(tmp_path):
    engine = create_engine_for_url(f"sqlite:///{tmp_path / 'ledger.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def owner_id(session) -> UUID:
    user = UserModel(full_name="Hana Tesfaye", email="hana@example.com")
    user_id = user.id
    session.add(user)
    session.commit()
    return user_id


@pytest.fixture
def coordinator(session) -> TransactionCoordinator:
    return TransactionCoordinator(session)


@pytest.fixture
def service(session, settings) -> AccountService:
    return AccountService(TransactionCoordinator(session), SqlUserDirectory(session), settings)


@pytest.fixture
def open_account(service, owner_id):
    def _open(number: str, balance: str = "0"):
        return service.create_account(
            CreateAccountRequest(account_number=number, initial_balance=Decimal(balance)),
            owner_id,
        )

    return _open
