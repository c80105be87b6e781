# tests/API/test_sync_api.py
# Description: Integration tests for the /api/v1/sync endpoints against a real SQLite store.
#
# Imports
import uuid
from unittest.mock import MagicMock, patch
#
# Third-Party Imports
import pytest
from fastapi import FastAPI, Request, status
from fastapi.testclient import TestClient
from slowapi import Limiter
from slowapi.util import get_remote_address
#
# Local Imports
from timetrack_Server_API.app.api.v1.endpoints import sync as sync_router_module
from timetrack_Server_API.app.api.v1.API_Deps.TimeTracking_DB_Deps import get_sync_coordinator
from timetrack_Server_API.app.api.v1.API_Deps.error_handlers import register_error_handlers
from timetrack_Server_API.app.core.AuthNZ.User_DB_Handling import get_request_user, User
from timetrack_Server_API.app.core.config import settings
from timetrack_Server_API.app.core.DB_Management.TimeTracking_DB import TimeTrackingDB, EPOCH_TIMESTAMP
from timetrack_Server_API.app.core.Security.Security import create_access_token
from timetrack_Server_API.app.core.Sync import SyncCoordinator, StorageError
#
########################################################################################################################
#
# Functions:

SYNC_URL = "/api/v1/sync"

USER_A = User(id=str(uuid.uuid4()), username="alice", device_id="alice-laptop")
USER_B = User(id=str(uuid.uuid4()), username="bob")


def _build_app(db: TimeTrackingDB) -> FastAPI:
    app = FastAPI()
    app.include_router(sync_router_module.router, prefix=SYNC_URL, tags=["sync"])
    app.state.limiter = sync_router_module.limiter
    app.state.timetrack_db = db
    register_error_handlers(app)
    return app


@pytest.fixture
def db(tmp_path):
    store = TimeTrackingDB(tmp_path / "api_sync.sqlite")
    yield store
    store.close_all_connections()


@pytest.fixture
def test_app(db):
    app = _build_app(db)
    current = {"user": USER_A}
    app.dependency_overrides[get_request_user] = lambda: current["user"]
    app.state.current = current
    return app


@pytest.fixture
def client(test_app):
    return TestClient(test_app)


def act_as(test_app, user: User):
    test_app.state.current["user"] = user


def sync_payload(device_id="alice-laptop", **kwargs):
    payload = {"device_id": device_id, "local_projects": [], "local_sessions": [],
               "deleted_projects": [], "deleted_sessions": []}
    payload.update(kwargs)
    return payload


# --- Test Cases ---

class TestSyncPush:

    def test_push_and_pull_round(self, client):
        p1, s1 = str(uuid.uuid4()), str(uuid.uuid4())
        response = client.post(SYNC_URL, json=sync_payload(
            local_projects=[{"id": p1, "name": "Work", "color": "#3366ff"}],
            local_sessions=[{"id": s1, "project_id": p1, "start_time": "2024-03-01T09:00:00Z",
                             "end_time": "2024-03-01T10:00:00Z"}],
        ))

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["previous_sync_time"] == EPOCH_TIMESTAMP
        assert data["pull_mode"] == "full"
        assert data["skipped"] == []
        assert [p["id"] for p in data["server_projects"]] == [p1]
        project = data["server_projects"][0]
        assert project["user_id"] == USER_A.id
        assert project["device_id"] == "alice-laptop"
        assert project["is_deleted"] is False
        session = data["server_sessions"][0]
        assert session["start_time"] == "2024-03-01T09:00:00.000000Z"
        assert session["project_id"] == p1

    def test_response_cursor_feeds_next_request(self, client):
        first = client.post(SYNC_URL, json=sync_payload()).json()
        second = client.post(SYNC_URL, json=sync_payload()).json()
        assert second["previous_sync_time"] == first["last_sync_time"]

    def test_device_id_falls_back_to_identity_claim(self, client, db):
        response = client.post(SYNC_URL, json=sync_payload(device_id=None))
        assert response.status_code == status.HTTP_200_OK
        assert db.get_sync_status(USER_A.id, "alice-laptop") == response.json()["last_sync_time"]

    def test_missing_device_is_bad_request(self, client, test_app):
        act_as(test_app, USER_B)
        response = client.post(SYNC_URL, json=sync_payload(device_id=None))
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["detail"]["category"] == "bad-request"

    def test_invalid_record_applies_nothing(self, client, db):
        response = client.post(SYNC_URL, json=sync_payload(
            local_projects=[{"name": "Fine", "color": "#fff"}, {"name": "No color"}],
        ))
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["detail"]["category"] == "bad-request"
        assert db.list_projects(USER_A.id, include_deleted=True) == []

    def test_unparseable_payload_is_rejected_by_schema(self, client, db):
        response = client.post(SYNC_URL, json={"device_id": "x", "local_sessions": [{"start_time": "yesterday"}]})
        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["category"] == "bad-request"
        assert "local_sessions.0.start_time" in detail["message"]
        assert db.get_sync_status(USER_A.id) == EPOCH_TIMESTAMP

    def test_client_owner_field_is_ignored(self, client, db):
        p1 = str(uuid.uuid4())
        client.post(SYNC_URL, json=sync_payload(
            local_projects=[{"id": p1, "user_id": USER_B.id, "name": "Mine", "color": "#fff"}]))
        assert db.get_project(USER_A.id, p1) is not None
        assert db.get_project(USER_B.id, p1) is None

    def test_tombstones_are_returned(self, client):
        s1 = str(uuid.uuid4())
        client.post(SYNC_URL, json=sync_payload(local_sessions=[
            {"id": s1, "start_time": "2024-03-01T09:00:00Z", "end_time": "2024-03-01T10:00:00Z"}]))
        data = client.post(SYNC_URL, json=sync_payload(device_id="alice-phone", deleted_sessions=[s1])).json()
        assert data["server_sessions"][0]["is_deleted"] is True

    def test_stale_edit_without_flag_does_not_revive(self, client, db):
        p1 = str(uuid.uuid4())
        client.post(SYNC_URL, json=sync_payload(local_projects=[{"id": p1, "name": "Work", "color": "#fff"}]))
        client.post(SYNC_URL, json=sync_payload(deleted_projects=[p1]))

        data = client.post(SYNC_URL, json=sync_payload(
            device_id="alice-phone", local_projects=[{"id": p1, "name": "Renamed", "color": "#fff"}])).json()

        assert data["server_projects"][0]["name"] == "Renamed"
        assert data["server_projects"][0]["is_deleted"] is True
        assert db.list_projects(USER_A.id) == []

    def test_explicit_flag_restores_tombstone(self, client, db):
        p1 = str(uuid.uuid4())
        client.post(SYNC_URL, json=sync_payload(local_projects=[{"id": p1, "name": "Work", "color": "#fff"}]))
        client.post(SYNC_URL, json=sync_payload(deleted_projects=[p1]))

        data = client.post(SYNC_URL, json=sync_payload(
            local_projects=[{"id": p1, "name": "Work", "color": "#fff", "is_deleted": False}])).json()

        assert data["server_projects"][0]["is_deleted"] is False
        assert len(db.list_projects(USER_A.id)) == 1


class TestOwnershipOverHttp:

    def test_foreign_id_is_skipped_and_reported(self, client, test_app, db):
        p1 = str(uuid.uuid4())
        client.post(SYNC_URL, json=sync_payload(local_projects=[{"id": p1, "name": "Alice's", "color": "#fff"}]))

        act_as(test_app, USER_B)
        response = client.post(SYNC_URL, json=sync_payload(
            device_id="bob-phone", local_projects=[{"id": p1, "name": "Bob's", "color": "#000"}]))

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["server_projects"] == []
        assert data["skipped"] == [{"entity": "projects", "id": p1, "category": "conflict-skipped",
                                    "message": data["skipped"][0]["message"]}]
        assert db.get_project(USER_A.id, p1)["name"] == "Alice's"


class TestPullAndStatus:

    def test_pull_only_advances_cursor(self, client, db):
        client.post(SYNC_URL, json=sync_payload(local_projects=[{"name": "Work", "color": "#fff"}]))

        response = client.get(SYNC_URL, params={"device_id": "alice-tablet"})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["previous_sync_time"] == EPOCH_TIMESTAMP
        assert len(data["server_projects"]) == 1
        assert db.get_sync_status(USER_A.id, "alice-tablet") == data["last_sync_time"]

    def test_status(self, client):
        assert client.get(f"{SYNC_URL}/status").json()["last_sync_time"] == EPOCH_TIMESTAMP
        synced = client.post(SYNC_URL, json=sync_payload()).json()
        response = client.get(f"{SYNC_URL}/status", params={"device_id": "alice-laptop"})
        assert response.json() == {"last_sync_time": synced["last_sync_time"], "device_id": "alice-laptop"}


class TestSyncFailures:

    def test_timeout_maps_to_503(self, test_app, db):
        test_app.dependency_overrides[get_sync_coordinator] = lambda: SyncCoordinator(db, timeout_seconds=0)
        response = TestClient(test_app).post(SYNC_URL, json=sync_payload(
            local_projects=[{"name": "Work", "color": "#fff"}]))
        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["detail"]["category"] == "internal"
        assert response.headers.get("Retry-After") == "1"
        assert db.list_projects(USER_A.id, include_deleted=True) == []

    def test_storage_error_maps_to_500(self, test_app):
        failing = MagicMock(spec=SyncCoordinator)
        failing.sync.side_effect = StorageError("disk full")
        test_app.dependency_overrides[get_sync_coordinator] = lambda: failing
        response = TestClient(test_app).post(SYNC_URL, json=sync_payload())
        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json()["detail"]["category"] == "internal"
        assert "Retry" in response.json()["detail"]["message"]

    def test_unexpected_error_maps_to_500(self, test_app):
        failing = MagicMock(spec=SyncCoordinator)
        failing.sync.side_effect = RuntimeError("boom")
        test_app.dependency_overrides[get_sync_coordinator] = lambda: failing
        response = TestClient(test_app).post(SYNC_URL, json=sync_payload())
        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json()["detail"] == {"category": "internal", "message": "Internal server error."}

    def test_missing_store_is_500(self):
        app = _build_app(db=None)
        app.dependency_overrides[get_request_user] = lambda: USER_A
        response = TestClient(app).post(SYNC_URL, json=sync_payload())
        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR

    def test_rate_limit_body_has_category(self):
        limiter = Limiter(key_func=get_remote_address)
        app = FastAPI()
        app.state.limiter = limiter
        register_error_handlers(app)

        @app.get("/limited")
        @limiter.limit("1/minute")
        async def limited(request: Request):
            return {"ok": True}

        limited_client = TestClient(app)
        assert limited_client.get("/limited").status_code == status.HTTP_200_OK
        response = limited_client.get("/limited")
        assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS
        assert response.json()["detail"]["category"] == "internal"
        assert response.json()["detail"]["message"].startswith("Rate limit exceeded")


class TestSyncAuthentication:
    """Runs the real identity dependency instead of the override."""

    @pytest.fixture
    def auth_client(self, db):
        return TestClient(_build_app(db))

    def test_single_user_requires_api_key(self, auth_client):
        with patch.dict(settings, {"SINGLE_USER_MODE": True, "SINGLE_USER_API_KEY": "test-key"}):
            response = auth_client.post(SYNC_URL, json=sync_payload())
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["detail"]["category"] == "unauthorized"

    def test_single_user_wrong_key(self, auth_client):
        with patch.dict(settings, {"SINGLE_USER_MODE": True, "SINGLE_USER_API_KEY": "test-key"}):
            response = auth_client.post(SYNC_URL, json=sync_payload(), headers={"X-API-KEY": "nope"})
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_single_user_valid_key_uses_fixed_owner(self, auth_client, db):
        with patch.dict(settings, {"SINGLE_USER_MODE": True, "SINGLE_USER_API_KEY": "test-key"}):
            response = auth_client.post(SYNC_URL, headers={"X-API-KEY": "test-key"}, json=sync_payload(
                local_projects=[{"name": "Solo", "color": "#fff"}]))
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["server_projects"][0]["user_id"] == settings["SINGLE_USER_OWNER_ID"]

    def test_multi_user_bearer_token(self, auth_client, db):
        owner = str(uuid.uuid4())
        with patch.dict(settings, {"SINGLE_USER_MODE": False}):
            token = create_access_token({"user_id": owner, "device_id": "token-device"})
            response = auth_client.get(SYNC_URL, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == status.HTTP_200_OK
        assert db.get_sync_status(owner, "token-device") == response.json()["last_sync_time"]

    def test_multi_user_missing_token(self, auth_client):
        with patch.dict(settings, {"SINGLE_USER_MODE": False}):
            response = auth_client.post(SYNC_URL, json=sync_payload())
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.headers.get("WWW-Authenticate") == "Bearer"

    def test_multi_user_garbage_token(self, auth_client):
        with patch.dict(settings, {"SINGLE_USER_MODE": False}):
            response = auth_client.get(f"{SYNC_URL}/status", headers={"Authorization": "Bearer not.a.jwt"})
        assert response.status_code == status.HTTP_401_UNAUTHORIZED


class TestApplicationAssembly:

    def test_main_app_routes_and_lifespan(self, db):
        from timetrack_Server_API.app import main

        main.app.state.timetrack_db = db
        main.app.dependency_overrides[get_request_user] = lambda: USER_A
        try:
            with TestClient(main.app) as main_client:
                assert main_client.get("/health").json() == {"status": "healthy"}
                response = main_client.post(SYNC_URL, json=sync_payload())
                assert response.status_code == status.HTTP_200_OK
                assert main_client.get("/api/v1/projects/").json() == []
            assert main.app.state.timetrack_db is None
        finally:
            main.app.dependency_overrides.clear()
            main.app.state.timetrack_db = None

#
# End of test_sync_api.py
########################################################################################################################
