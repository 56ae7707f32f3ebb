"""JWT Token Issuing and Validation (HS256 platform tokens)"""
import jwt
from typing import Any, Dict, Optional
from datetime import timedelta

from ..config.settings import settings
from ..domain.errors import AuthenticationError
from ..domain.models import ActorContext
from .logger import get_logger
from .time import utc_now

logger = get_logger(__name__)

REQUIRED_CLAIMS = ("sub", "role", "exp")


class JWTValidator:
    """Validator for bearer tokens signed with the platform secret"""

    def __init__(
        self,
        secret: Optional[str] = None,
        algorithm: Optional[str] = None
    ):
        self.secret = secret or settings.jwt_secret
        self.algorithm = algorithm or settings.jwt_algorithm

    def validate_token(self, token: str) -> Dict[str, Any]:
        """
        Validate a bearer token

        Args:
            token: Bearer token (with or without 'Bearer ' prefix)

        Returns:
            Decoded token claims

        Raises:
            AuthenticationError: If token is invalid
        """
        if not token:
            raise AuthenticationError("Token is missing")

        if token.startswith("Bearer "):
            token = token[7:]

        try:
            return jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": list(REQUIRED_CLAIMS)}
            )
        except jwt.ExpiredSignatureError:
            logger.warning("Token expired")
            raise AuthenticationError("Token has expired")
        except jwt.MissingRequiredClaimError as e:
            logger.warning(f"Token missing claim: {e.claim}")
            raise AuthenticationError(f"Token is missing the '{e.claim}' claim")
        except jwt.PyJWTError as e:
            logger.warning(f"JWT validation error: {e}")
            raise AuthenticationError(f"Invalid token: {str(e)}")

    def get_actor_context(self, token: str) -> ActorContext:
        """
        Extract actor context from validated token

        Unknown roles are carried through as-is; the permission guard denies them.
        """
        claims = self.validate_token(token)
        user_id = str(claims["sub"])

        return ActorContext(
            user_id=user_id,
            display_name=claims.get("name") or user_id,
            role=str(claims["role"]),
            department=claims.get("department")
        )


def create_access_token(
    user_id: str,
    role: str,
    department: Optional[str] = None,
    display_name: Optional[str] = None,
    expires_minutes: Optional[int] = None,
    secret: Optional[str] = None
) -> str:
    """Issue a signed platform token for a user"""
    now = utc_now()
    expiry = expires_minutes if expires_minutes is not None else settings.jwt_expiry_minutes
    claims: Dict[str, Any] = {
        "sub": user_id,
        "name": display_name or user_id,
        "role": role,
        "department": department,
        "iat": now,
        "exp": now + timedelta(minutes=expiry),
    }
    return jwt.encode(claims, secret or settings.jwt_secret, algorithm=settings.jwt_algorithm)


# Global validator instance
_jwt_validator: Optional[JWTValidator] = None


def get_jwt_validator() -> JWTValidator:
    """Get global JWT validator instance"""
    global _jwt_validator
    if _jwt_validator is None:
        _jwt_validator = JWTValidator()
    return _jwt_validator


def get_current_user(authorization: str) -> ActorContext:
    """
    Get current user from authorization header

    Args:
        authorization: Authorization header value

    Returns:
        ActorContext
    """
    if not authorization:
        raise AuthenticationError("Authorization header is missing")

    return get_jwt_validator().get_actor_context(authorization)
