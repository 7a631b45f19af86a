"""
FastAPI dependencies for authentication.
The identity provider issues the bearer token; its role claim is the only
capability this service checks.
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Dict, Any

# Will be initialized in main.py when the app starts
_jwt_handler = None

security = HTTPBearer()


def init_auth(jwt_handler):
    """Initialize auth dependencies with actual instances. Called from main.py."""
    global _jwt_handler
    _jwt_handler = jwt_handler


def get_jwt_handler():
    """Get the JWT handler instance, building it from config on first use."""
    global _jwt_handler
    if _jwt_handler is None:
        import config
        from api.auth.jwt_handler import JWTHandler
        try:
            _jwt_handler = JWTHandler(
                secret=config.API_JWT_SECRET,
                algorithm=config.API_JWT_ALGORITHM,
                access_expiry_minutes=config.API_JWT_EXPIRY_MINUTES,
            )
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Auth system not initialized: {e}"
            )
    return _jwt_handler


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> Dict[str, Any]:
    """
    Validate the Bearer token and return the caller's identity:

        {"id": ..., "email": ..., "role": ..., "is_admin": bool}
    """
    jwt_handler = get_jwt_handler()
    payload = jwt_handler.verify_token(credentials.credentials, expected_type="access")

    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    role = payload.get("role") or "user"
    return {
        "id": payload["sub"],
        "email": payload.get("email", ""),
        "role": role,
        "is_admin": role == "admin",
    }


async def get_current_admin(
    user: Dict[str, Any] = Depends(get_current_user)
) -> Dict[str, Any]:
    """Require the admin capability (upload, manual edit)."""
    if not user.get("is_admin"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return user
