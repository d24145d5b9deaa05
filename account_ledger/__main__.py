"""Serve the HTTP adapter: ``python -m account_ledger``."""

import uvicorn

from .core.config import get_settings

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "account_ledger.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
    )
