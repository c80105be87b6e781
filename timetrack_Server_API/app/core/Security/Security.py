# Security.py
#
# Description: Creates and validates the JWT access tokens that carry the owner identity in multi-user mode.
#
# Imports
from datetime import datetime, timedelta, timezone
from typing import Optional

# 3rd-Party Libraries
import jwt # Using PyJWT library (pip install pyjwt)
from loguru import logger
from pydantic import BaseModel

# Local Imports
from timetrack_Server_API.app.core.config import settings

#######################################################################################################################

# --- JWT Handling ---

# Pydantic model for data extracted from the token payload
class TokenData(BaseModel):
    user_id: Optional[str] = None
    email: Optional[str] = None
    device_id: Optional[str] = None


def create_access_token(data: dict, expires_delta_minutes: Optional[int] = None) -> str:
    """
    Creates a JWT access token.

    Credential issuance belongs to an external identity provider; this exists
    for tooling and tests that need a token the server will accept.

    Args:
        data (dict): Claims to encode. MUST contain 'user_id'; 'email' and 'device_id' are optional.
        expires_delta_minutes (Optional[int]): Custom expiration time in minutes.
                                                 Defaults to settings["ACCESS_TOKEN_EXPIRE_MINUTES"].

    Returns:
        str: The encoded JWT access token.

    Raises:
        ValueError: If 'user_id' is missing in the input data.
    """
    if not data.get("user_id"):
        logger.error("Attempted to create token without 'user_id' in data.")
        raise ValueError("Input data for token creation must contain 'user_id'.")

    minutes = expires_delta_minutes if expires_delta_minutes is not None else settings["ACCESS_TOKEN_EXPIRE_MINUTES"]
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=minutes)

    # 'sub' carries the owner id
    payload = {
        "sub": str(data["user_id"]),
        "exp": expire,
        "iat": now,
    }
    for claim in ("email", "device_id"):
        if data.get(claim):
            payload[claim] = data[claim]

    logger.debug(f"Creating token for user_id: {data['user_id']} expiring at {expire}")
    return jwt.encode(payload, settings["JWT_SECRET_KEY"], algorithm=settings["JWT_ALGORITHM"])


def decode_access_token(token: str) -> Optional[TokenData]:
    """
    Decodes and validates a JWT access token.

    Returns:
        Optional[TokenData]: The owner id (and optional email/device) if the token is
                             valid and carries a non-empty 'sub' claim, otherwise None.
    """
    try:
        # PyJWT checks 'exp' automatically
        payload = jwt.decode(
            token,
            settings["JWT_SECRET_KEY"],
            algorithms=[settings["JWT_ALGORITHM"]]
        )
    except jwt.ExpiredSignatureError:
        logger.warning("Token validation failed: Signature has expired.")
        return None
    except jwt.InvalidSignatureError:
        logger.error("Token validation failed: Invalid signature.")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"Token validation failed: Invalid token - {e}")
        return None

    user_id = payload.get("sub")
    if not user_id:
        logger.warning("Token decoded successfully, but 'sub' (user_id) claim is missing.")
        return None

    token_data = TokenData(user_id=str(user_id), email=payload.get("email"), device_id=payload.get("device_id"))
    logger.debug(f"Token successfully decoded for user_id: {token_data.user_id}")
    return token_data

#
# End of Security.py
# #####################################################################################################################
