"""API routers package."""
from zkaccount.api.accounts import router as accounts_router
from zkaccount.api.recipients import router as recipients_router
from zkaccount.api.transfers import router as transfers_router

__all__ = [
    "accounts_router",
    "recipients_router",
    "transfers_router",
]
