"""Operator authentication and rate limiting helpers for the API."""

import os
import secrets
import logging

from fastapi import HTTPException, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from slowapi import Limiter
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)

security = HTTPBearer()

# Rate limiter
limiter = Limiter(key_func=get_remote_address)

WEBHOOK_RATE_LIMIT = os.getenv("WEBHOOK_RATE_LIMIT", "120/minute")
OPERATOR_RATE_LIMIT = os.getenv("OPERATOR_RATE_LIMIT", "60/minute")


async def verify_api_key(credentials: HTTPAuthorizationCredentials = Security(security)) -> str:
    """Verify the operator API key from the Authorization header.

    Webhook endpoints do not use this; they authenticate by payload signature.

    Args:
        credentials: HTTP Bearer credentials from the request.

    Returns:
        The verified API key.

    Raises:
        HTTPException: If API key is invalid or not configured.
    """
    api_key = credentials.credentials
    expected_key = os.getenv("API_KEY")
    if not expected_key:
        logger.error("API_KEY environment variable is not configured")
        raise HTTPException(status_code=500, detail="Server configuration error")
    if not secrets.compare_digest(api_key.encode("utf-8"), expected_key.encode("utf-8")):
        logger.warning("Rejected operator request with invalid API key")
        raise HTTPException(status_code=401, detail="Invalid API key")
    return api_key
