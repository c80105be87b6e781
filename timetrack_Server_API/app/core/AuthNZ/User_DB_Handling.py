# User_DB_Handling.py
# Description: Resolves the owner of a request based on application mode.
#
# Imports
from typing import Optional
#
# 3rd-Party Libraries
from fastapi import Depends, HTTPException, status
from loguru import logger
from pydantic import BaseModel
#
# Local Imports
from timetrack_Server_API.app.core.Security.Security import decode_access_token, TokenData
from timetrack_Server_API.app.core.config import settings
from timetrack_Server_API.app.api.v1.API_Deps.v1_endpoint_deps import api_key_header, oauth2_scheme

#######################################################################################################################

# --- User Model ---
# `id` is the owner identifier every record and cursor is scoped to.
class User(BaseModel):
    id: str
    username: str
    email: Optional[str] = None
    device_id: Optional[str] = None
    is_active: bool = True


def _unauthorized(message: str, bearer: bool = False) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"category": "unauthorized", "message": message},
        headers={"WWW-Authenticate": "Bearer"} if bearer else None,
    )


def get_single_user() -> User:
    return User(id=settings["SINGLE_USER_OWNER_ID"], username="single_user")

#######################################################################################################################

# --- Mode-Specific Verification ---

def verify_single_user_api_key(api_key: Optional[str]) -> User:
    if api_key is None:
        logger.warning("Single-User Mode: X-API-KEY header is missing.")
        raise _unauthorized("X-API-KEY header required for single-user mode")
    if api_key != settings["SINGLE_USER_API_KEY"]:
        logger.warning(f"Single-User Mode: Invalid X-API-KEY received: '{api_key[:5]}...'")
        raise _unauthorized("Invalid X-API-KEY")
    logger.debug("Single-user API Key verified. Returning fixed user object.")
    return get_single_user()


def verify_jwt_user(token: Optional[str]) -> User:
    """
    Verifies a Bearer JWT in multi-user mode.

    The identity provider is trusted: the token's 'sub' claim becomes the owner
    id as-is, with no local user lookup.
    """
    if token is None:
        logger.warning("Multi-User Mode: Authorization Bearer token is missing.")
        raise _unauthorized("Not authenticated (Bearer token required for multi-user mode)", bearer=True)

    token_data: Optional[TokenData] = decode_access_token(token)
    if token_data is None or not token_data.user_id:
        logger.warning("Token decoding failed or user_id missing in token payload.")
        raise _unauthorized("Could not validate credentials", bearer=True)

    user = User(
        id=token_data.user_id,
        username=token_data.email or token_data.user_id,
        email=token_data.email,
        device_id=token_data.device_id,
    )
    logger.debug(f"Authenticated user: {user.id}")
    return user


# --- Combined Primary Authentication Dependency ---

async def get_request_user(
    api_key: Optional[str] = Depends(api_key_header),
    token: Optional[str] = Depends(oauth2_scheme)
    ) -> User:
    """
    Determines the current user based on the application mode (single/multi)
    by checking the 'settings' dictionary.

    - In Single-User Mode: Verifies X-API-KEY against settings["SINGLE_USER_API_KEY"]
      and returns the fixed single user.
    - In Multi-User Mode: Verifies the Bearer token and returns the user it names.
    """
    if settings["SINGLE_USER_MODE"]:
        return verify_single_user_api_key(api_key)
    return verify_jwt_user(token)

#
# End of User_DB_Handling.py
#######################################################################################################################
