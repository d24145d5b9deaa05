from fastapi import Depends
from sqlmodel import Session

from ..services import AccountService, SqlUserDirectory, TransactionCoordinator
from .config import Settings, get_settings
from .db import get_session

def get_account_service(
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> AccountService:
    coordinator = TransactionCoordinator(
        session, reference_retry_limit=settings.reference_retry_limit
    )
    return AccountService(coordinator, SqlUserDirectory(session), settings)
