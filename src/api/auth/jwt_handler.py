"""
JWT verification for tokens issued by the identity provider.
Uses PyJWT with a shared HS256 secret. Token creation is kept for local
tooling and tests.
"""
import jwt
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any


class JWTHandler:
    """Handles JWT token creation and verification."""

    def __init__(self, secret: str, algorithm: str = "HS256",
                 access_expiry_minutes: int = 30):
        if not secret:
            raise ValueError("API_JWT_SECRET must be set when API is enabled")
        self.secret = secret
        self.algorithm = algorithm
        self.access_expiry_minutes = access_expiry_minutes

    def create_access_token(self, user_id: str, email: str, role: str) -> str:
        """Create a short-lived access token."""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "email": email,
            "role": role,
            "type": "access",
            "iat": now,
            "exp": now + timedelta(minutes=self.access_expiry_minutes),
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify_token(self, token: str, expected_type: str = "access") -> Optional[Dict[str, Any]]:
        """
        Verify and decode a JWT token.

        Returns:
            Decoded payload dict if valid, None if invalid/expired.
        """
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None
        if payload.get("type", expected_type) != expected_type:
            return None
        if not payload.get("sub"):
            return None
        return payload
