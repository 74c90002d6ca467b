# Authentication Module - JWT token verification (Procedural)
import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict
from posture_coach import config
from posture_coach import logger


def create_jwt_token(subject_id: str, expires_hours: int = None) -> str:
    """
    Create JWT token for a subject

    Accounts and credential checks live in the account service; this is
    used by tooling and tests to mint tokens the stats API accepts.

    Args:
        subject_id: Subject (user) identifier
        expires_hours: Token lifetime (default from config)

    Returns:
        JWT token string
    """
    if expires_hours is None:
        expires_hours = config.JWT_EXPIRATION_HOURS

    issued_at = datetime.now(timezone.utc)
    expiration = issued_at + timedelta(hours=expires_hours)

    payload = {
        "user_id": str(subject_id),
        "exp": expiration,
        "iat": issued_at
    }

    token = jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)

    logger.log_auth("JWT Token Created", {
        "subject_id": subject_id,
        "expires_at": expiration.isoformat()
    })

    return token


def decode_jwt_token(token: str) -> Optional[Dict]:
    """
    Decode and verify JWT token

    Args:
        token: JWT token string

    Returns:
        Decoded payload dict or None if invalid
    """
    try:
        payload = jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
        return payload
    except jwt.ExpiredSignatureError:
        logger.log_error("JWT Decode Failed", Exception("Token expired"))
        return None
    except jwt.InvalidTokenError as e:
        logger.log_error("JWT Decode Failed", e)
        return None


def extract_subject_id(token: str) -> Optional[str]:
    """
    Extract subject ID from JWT token

    Args:
        token: JWT token string

    Returns:
        Subject ID or None if invalid
    """
    payload = decode_jwt_token(token)
    if payload and payload.get("user_id") is not None:
        return str(payload["user_id"])
    return None
