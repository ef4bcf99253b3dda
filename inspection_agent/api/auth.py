"""Authentication utilities for the record endpoints."""
import secrets
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from inspection_agent.core.config import settings

security = HTTPBasic()


def verify_credentials(username: str, password: str) -> bool:
    """Compare credentials against the configured pair in constant time."""
    user_ok = secrets.compare_digest(username.encode("utf-8"), settings.basic_auth_user.encode("utf-8"))
    pass_ok = secrets.compare_digest(password.encode("utf-8"), settings.basic_auth_pass.encode("utf-8"))
    return user_ok and pass_ok


async def require_auth(credentials: HTTPBasicCredentials = Depends(security)) -> str:
    """Dependency to require HTTP Basic authentication."""
    if not verify_credentials(credentials.username, credentials.password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials.username
