# tests/Security/test_security_tokens.py
# Description: Tests for JWT issuing/decoding and the owner resolution built on it.
#
# Imports
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import patch
#
# 3rd-party imports
import jwt
import pytest
from fastapi import HTTPException
#
# Local Imports
from timetrack_Server_API.app.core.config import settings
from timetrack_Server_API.app.core.Security.Security import create_access_token, decode_access_token
from timetrack_Server_API.app.core.AuthNZ.User_DB_Handling import (
    verify_jwt_user, verify_single_user_api_key, get_single_user
)
#
#######################################################################################################################
#
# Functions:

class TestAccessTokens:

    def test_round_trip_claims(self):
        owner = str(uuid.uuid4())
        token = create_access_token({"user_id": owner, "email": "a@example.com", "device_id": "laptop"})
        data = decode_access_token(token)
        assert data.user_id == owner
        assert data.email == "a@example.com"
        assert data.device_id == "laptop"

    def test_optional_claims_absent(self):
        data = decode_access_token(create_access_token({"user_id": "owner-1"}))
        assert data.user_id == "owner-1"
        assert data.email is None
        assert data.device_id is None

    def test_user_id_required(self):
        with pytest.raises(ValueError):
            create_access_token({"email": "a@example.com"})

    def test_expired_token(self):
        token = create_access_token({"user_id": "owner-1"}, expires_delta_minutes=-1)
        assert decode_access_token(token) is None

    def test_wrong_signature(self):
        token = jwt.encode({"sub": "owner-1", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
                           "some-other-secret-that-is-long-enough", algorithm=settings["JWT_ALGORITHM"])
        assert decode_access_token(token) is None

    def test_missing_subject(self):
        token = jwt.encode({"exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
                           settings["JWT_SECRET_KEY"], algorithm=settings["JWT_ALGORITHM"])
        assert decode_access_token(token) is None

    def test_garbage(self):
        assert decode_access_token("definitely.not.valid") is None


class TestOwnerResolution:

    def test_jwt_user_carries_device(self):
        token = create_access_token({"user_id": "owner-9", "device_id": "phone"})
        user = verify_jwt_user(token)
        assert user.id == "owner-9"
        assert user.username == "owner-9"
        assert user.device_id == "phone"

    def test_jwt_missing_token(self):
        with pytest.raises(HTTPException) as exc_info:
            verify_jwt_user(None)
        assert exc_info.value.status_code == 401
        assert exc_info.value.detail["category"] == "unauthorized"

    def test_single_user_key(self):
        with patch.dict(settings, {"SINGLE_USER_API_KEY": "k-123", "SINGLE_USER_OWNER_ID": "fixed-owner"}):
            assert verify_single_user_api_key("k-123").id == "fixed-owner"
            with pytest.raises(HTTPException):
                verify_single_user_api_key("wrong")
            assert get_single_user().id == "fixed-owner"

#
# End of test_security_tokens.py
#######################################################################################################################
