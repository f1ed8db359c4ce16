"""
Tests for vault API endpoints.

Uses FastAPI TestClient against a real vault in a temp directory.
Auth bypassed via dependency_overrides except in TestAuth.
"""

import base64

import pytest
from fastapi.testclient import TestClient

from lockbox.api.main import create_app
from lockbox.api.security import initialize_session_token, verify_session_token
from lockbox.core import Settings

PASSWORD = "correct-horse"


@pytest.fixture
def app(tmp_path):
    app = create_app(Settings(data_dir=tmp_path / "data", auto_lock_seconds=0), configure_audit=False)
    yield app
    app.state.vault_session.close()


@pytest.fixture
def client(app):
    """TestClient with auth bypass."""
    app.dependency_overrides[verify_session_token] = lambda: "test-token"
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def unauth_client(app):
    """TestClient without auth."""
    return TestClient(app)


@pytest.fixture
def created(client):
    resp = client.post("/api/vault/create", json={"password": PASSWORD})
    assert resp.status_code == 200
    return resp.json()["recovery_key"]


def _add(client, **overrides):
    body = {"name": "github", "category": "token", "content": "ghp_abc"}
    body.update(overrides)
    resp = client.post("/api/vault/secrets", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()["id"]


class TestAuth:
    def test_requires_token(self, unauth_client):
        initialize_session_token()
        resp = unauth_client.get("/api/vault/status")
        assert resp.status_code == 401

    def test_wrong_token(self, unauth_client):
        initialize_session_token()
        resp = unauth_client.get("/api/vault/status", headers={"X-Session-Token": "nope"})
        assert resp.status_code == 401

    def test_valid_token(self, unauth_client):
        token = initialize_session_token()
        resp = unauth_client.get("/api/vault/status", headers={"X-Session-Token": token})
        assert resp.status_code == 200

    def test_health_is_public(self, unauth_client):
        resp = unauth_client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"


class TestSessionRoutes:
    def test_status_absent(self, client):
        resp = client.get("/api/vault/status")
        assert resp.json() == {"exists": False, "unlocked": False}

    def test_create(self, client, created):
        assert len(created.split("-")) == 12
        assert client.get("/api/vault/status").json() == {"exists": True, "unlocked": True}

    def test_create_twice_conflict(self, client, created):
        resp = client.post("/api/vault/create", json={"password": "x"})
        assert resp.status_code == 409

    def test_create_empty_password(self, client):
        resp = client.post("/api/vault/create", json={"password": ""})
        assert resp.status_code == 422

    def test_lock_and_login(self, client, created):
        resp = client.post("/api/vault/lock")
        assert resp.json() == {"success": True, "files_removed": 0}
        assert client.get("/api/vault/status").json()["unlocked"] is False

        assert client.post("/api/vault/login", json={"password": "wrong"}).status_code == 401
        assert client.post("/api/vault/login", json={"password": PASSWORD}).json() == {"success": True}
        assert client.get("/api/vault/status").json()["unlocked"] is True

    def test_recover(self, client, created):
        client.post("/api/vault/lock")
        assert client.post("/api/vault/recover", json={"recovery_key": "a-b-c"}).status_code == 401
        resp = client.post("/api/vault/recover", json={"recovery_key": created})
        assert resp.status_code == 200

    def test_login_without_vault(self, client):
        resp = client.post("/api/vault/login", json={"password": PASSWORD})
        assert resp.status_code == 500

    def test_touch(self, client, created):
        assert client.post("/api/vault/touch").json() == {"success": True, "unlocked": True}


class TestSecretRoutes:
    def test_locked_forbidden(self, client, created):
        client.post("/api/vault/lock")
        assert client.get("/api/vault/secrets").status_code == 403

    def test_add_list_get(self, client, created):
        secret_id = _add(client, notes="ci")
        listing = client.get("/api/vault/secrets").json()
        assert [s["id"] for s in listing] == [secret_id]
        assert "content" not in listing[0]

        secret = client.get(f"/api/vault/secrets/{secret_id}").json()
        assert secret["name"] == "github"
        assert secret["notes"] == "ci"
        assert secret["is_active"] is False

    def test_filter_category(self, client, created):
        _add(client)
        ssh = _add(client, name="deploy", category="ssh_key")
        listing = client.get("/api/vault/secrets", params={"category": "ssh_key"}).json()
        assert [s["id"] for s in listing] == [ssh]

    def test_invalid_category(self, client, created):
        resp = client.post("/api/vault/secrets", json={"name": "x", "category": "gpg", "content": "x"})
        assert resp.status_code == 400
        assert client.get("/api/vault/secrets", params={"category": "gpg"}).status_code == 400

    def test_content_text(self, client, created):
        secret_id = _add(client)
        resp = client.get(f"/api/vault/secrets/{secret_id}/content").json()
        assert resp == {"id": secret_id, "content": "ghp_abc", "content_encoding": "utf-8"}

    def test_content_binary(self, client, created):
        blob = b"\xff\x00\xfe"
        secret_id = _add(client, content=base64.b64encode(blob).decode(), content_encoding="base64")
        resp = client.get(f"/api/vault/secrets/{secret_id}/content").json()
        assert resp["content_encoding"] == "base64"
        assert base64.b64decode(resp["content"]) == blob

    def test_bad_base64(self, client, created):
        resp = client.post(
            "/api/vault/secrets",
            json={"name": "x", "category": "token", "content": "!!!", "content_encoding": "base64"},
        )
        assert resp.status_code == 400

    def test_not_found(self, client, created):
        assert client.get("/api/vault/secrets/nope").status_code == 404
        assert client.get("/api/vault/secrets/nope/content").status_code == 404
        assert client.delete("/api/vault/secrets/nope").status_code == 404
        assert client.patch("/api/vault/secrets/nope", json={"name": "x"}).status_code == 404

    def test_update(self, client, created):
        secret_id = _add(client)
        resp = client.patch(f"/api/vault/secrets/{secret_id}", json={"name": "renamed", "content": "v2"})
        assert resp.status_code == 200
        assert client.get(f"/api/vault/secrets/{secret_id}").json()["name"] == "renamed"
        assert client.get(f"/api/vault/secrets/{secret_id}/content").json()["content"] == "v2"

    def test_delete(self, client, created):
        secret_id = _add(client)
        assert client.delete(f"/api/vault/secrets/{secret_id}").json() == {"success": True}
        assert client.get("/api/vault/secrets").json() == []


class TestActivationRoutes:
    def test_activate_deactivate(self, client, created, tmp_path):
        target = tmp_path / "out" / "token"
        secret_id = _add(client, file_path=str(target))

        resp = client.post(f"/api/vault/secrets/{secret_id}/activate")
        assert resp.json() == {"success": True, "file_path": str(target)}
        assert target.read_bytes() == b"ghp_abc"
        assert client.get(f"/api/vault/secrets/{secret_id}").json()["is_active"] is True

        client.post(f"/api/vault/secrets/{secret_id}/deactivate")
        assert not target.exists()

    def test_activate_without_path(self, client, created):
        secret_id = _add(client)
        assert client.post(f"/api/vault/secrets/{secret_id}/activate").status_code == 400

    def test_deactivate_all(self, client, created, tmp_path):
        ids = [_add(client, name=f"s{i}", file_path=str(tmp_path / f"s{i}")) for i in range(2)]
        for secret_id in ids:
            client.post(f"/api/vault/secrets/{secret_id}/activate")

        resp = client.post("/api/vault/secrets/deactivate-all")
        assert resp.json() == {"success": True, "files_removed": 2}

    def test_lock_removes_files(self, client, created, tmp_path):
        target = tmp_path / "kubeconfig"
        secret_id = _add(client, category="kubeconfig", file_path=str(target))
        client.post(f"/api/vault/secrets/{secret_id}/activate")

        resp = client.post("/api/vault/lock")
        assert resp.json() == {"success": True, "files_removed": 1}
        assert not target.exists()
