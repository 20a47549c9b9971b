"""
API authentication using X-API-KEY header.
"""

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

from src.config.settings import get_settings

# API key header scheme
api_key_header = APIKeyHeader(name="X-API-KEY", auto_error=False)


async def verify_api_key(api_key: str | None = Security(api_key_header)) -> str:
    """
    Verify API key from X-API-KEY header.

    Args:
        api_key: API key from header

    Returns:
        The validated API key

    Raises:
        HTTPException: If API key is missing or invalid
    """
    settings = get_settings()

    # If no API keys configured, allow all requests (dev mode)
    if not settings.api_keys:
        return "dev-mode"

    if api_key is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Provide X-API-KEY header.",
        )

    # Check if key is in the list of valid keys (filter out empty strings)
    valid_keys = [k.strip() for k in settings.api_keys.split(",") if k.strip()]
    if not valid_keys or api_key not in valid_keys:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )

    return api_key


# Caller-declared operator identity; authentication proper is handled upstream
operator_id_header = APIKeyHeader(name="X-Operator-ID", auto_error=False)


async def get_operator_id(
    operator_id: str | None = Security(operator_id_header),
) -> int:
    """
    Resolve the acting operator from the X-Operator-ID header.

    Raises:
        HTTPException: 401 if the header is missing, 422 if not an integer
    """
    if operator_id is None or not operator_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing operator identity. Provide X-Operator-ID header.",
        )
    try:
        value = int(operator_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="X-Operator-ID must be an integer",
        )
    if value <= 0:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="X-Operator-ID must be positive",
        )
    return value


async def get_optional_operator_id(
    operator_id: str | None = Security(operator_id_header),
) -> int | None:
    """Like get_operator_id, but None when the header is absent."""
    if operator_id is None or not operator_id.strip():
        return None
    return await get_operator_id(operator_id)
