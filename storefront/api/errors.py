# storefront/api/errors.py
from fastapi import HTTPException

from storefront.domain.errors import StorefrontError


def to_http(e: StorefrontError) -> HTTPException:
    if isinstance(e, PermissionError):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, LookupError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, RuntimeError):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))
