"""
Authentication Utility - JWT handling.

Provides:
- JWT token creation/verification
- FastAPI dependencies for protected routes (subject / admin)
- Request provenance (IP, user agent) for the audit trail

Accounts are owned by the identity service; tokens carry everything the
KYC routes need (`sub` = subject id, `role`), so no user lookup happens here.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from kyc_core.core.config import get_settings
from kyc_core.models.kyc import RequestContext

ADMIN_ROLE = "admin"

# Bearer token extractor
bearer_scheme = HTTPBearer()


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token."""
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[dict]:
    """Decode and verify JWT token."""
    settings = get_settings()
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)) -> dict:
    """
    FastAPI dependency - Get current authenticated user.

    Usage:
        @router.get("/protected")
        async def route(user: dict = Depends(get_current_user)):
            return user
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(credentials.credentials)
    if not payload:
        raise credentials_exception

    user_id = payload.get("sub")
    if not user_id:
        raise credentials_exception

    return {"user_id": str(user_id), "role": payload.get("role")}


async def get_current_admin(user: dict = Depends(get_current_user)) -> dict:
    """Dependency - Require admin role."""
    if user["role"] != ADMIN_ROLE:
        raise HTTPException(status_code=403, detail="Admins only")
    return user


def get_request_context(request: Request) -> RequestContext:
    """Dependency - Provenance recorded on audit entries."""
    ip_address = request.client.host if request.client else None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded and ip_address in get_settings().trusted_proxies:
        ip_address = forwarded.split(",")[0].strip()
    return RequestContext(ip_address=ip_address, user_agent=request.headers.get("user-agent"))
