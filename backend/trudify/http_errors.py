from typing import NoReturn, Optional

from fastapi import HTTPException

from trudify.services.application_lifecycle import WithdrawalQuotaExceededError
from trudify.services.marketplace_db import (
    MarketplaceConflictError,
    MarketplaceError,
    MarketplaceNotFoundError,
    MarketplacePermissionError,
    MarketplaceValidationError,
    StoreUnavailableError,
)


def raise_marketplace_http_error(exc: Optional[MarketplaceError]) -> NoReturn:
    if exc is None:
        raise HTTPException(status_code=500, detail={"error": "Internal server error", "code": "internal_error"})
    detail = {"error": str(exc), "code": exc.code}
    if isinstance(exc, MarketplaceNotFoundError):
        raise HTTPException(status_code=404, detail=detail)
    if isinstance(exc, MarketplacePermissionError):
        raise HTTPException(status_code=403, detail=detail)
    if isinstance(exc, WithdrawalQuotaExceededError):
        raise HTTPException(status_code=429, detail=detail)
    if isinstance(exc, MarketplaceConflictError):
        raise HTTPException(status_code=409, detail=detail)
    if isinstance(exc, MarketplaceValidationError):
        raise HTTPException(status_code=400, detail=detail)
    if isinstance(exc, StoreUnavailableError):
        raise HTTPException(status_code=503, detail=detail)
    raise HTTPException(status_code=500, detail={"error": "Internal server error", "code": exc.code})
