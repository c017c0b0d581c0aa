"""
Token Utilities

Verification of the bearer tokens issued by the identity provider. Token
creation is kept for local tooling and tests; production tokens are minted
by the provider with the same secret and algorithm.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from fellowship.core.config import settings

logger = logging.getLogger(__name__)


def create_access_token(
    subject: str,
    additional_claims: dict[str, Any] | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a signed access token.

    Args:
        subject: Value of the ``sub`` claim (user id)
        additional_claims: Extra claims such as ``email`` and ``name``
        expires_delta: Token lifetime (defaults to the configured minutes)

    Returns:
        Encoded JWT string
    """
    expire = datetime.now(UTC) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode: dict[str, Any] = {"sub": subject, "exp": expire, "type": "access"}
    if additional_claims:
        to_encode.update(additional_claims)
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict[str, Any] | None:
    """
    Decode and verify a token.

    Returns:
        The claims, or None if the signature, algorithm or expiry is invalid
    """
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.debug(f"Token rejected: {e}")
        return None
