"""
Security — Authentication for the push API.

Two kinds of callers:
- The mobile app, registering its device tokens. It sends the
  user's Supabase access token, validated against Supabase Auth.
- Internal callers (application server, operators, the scheduler
  fallback). They send the Supabase service role key as a Bearer
  token.

Usage in route handlers:
    from mindboat_push.core.security import get_current_user_id, require_service_role

    @router.get("/protected")
    async def protected_route(user_id: str = Depends(get_current_user_id)):
        return {"user_id": user_id}
"""

import hmac

import httpx
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from mindboat_push.core import config as settings

# auto_error=False so we can return a custom 401 message instead of
# FastAPI's default 403 for missing credentials.
bearer_scheme = HTTPBearer(auto_error=False)


def _missing_token() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Missing authentication token. Provide a Bearer token in the Authorization header.",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    """
    FastAPI dependency that validates the Supabase JWT and returns the user ID.

    Sends the Bearer token to Supabase Auth's /auth/v1/user endpoint and
    returns the authenticated user's UUID string.

    Raises:
        HTTPException(401): If the token is missing, invalid, or expired.
    """
    if credentials is None:
        raise _missing_token()

    token = credentials.credentials

    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"{settings.SUPABASE_URL}/auth/v1/user",
                headers={
                    "Authorization": f"Bearer {token}",
                    "apikey": settings.SUPABASE_ANON_KEY,
                },
                timeout=10.0,
            )
    except httpx.RequestError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication service unavailable. Please try again.",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc

    if response.status_code != 200:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired authentication token.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        user_data = response.json()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication service returned an invalid response.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = user_data.get("id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token — no user ID found.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user_id


def is_service_role_token(token: str | None) -> bool:
    """Constant-time comparison against the configured service role key."""
    expected = settings.SUPABASE_SERVICE_ROLE_KEY
    if not token or not expected:
        return False
    return hmac.compare_digest(token.encode(), expected.encode())


async def require_service_role(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> None:
    """
    FastAPI dependency for internal endpoints.

    Raises:
        HTTPException(401): Missing token.
        HTTPException(403): Token is not the service role key.
    """
    if credentials is None:
        raise _missing_token()
    if not is_service_role_token(credentials.credentials):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Service role credentials required.",
        )
