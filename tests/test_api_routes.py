from __future__ import annotations

from dataclasses import replace
import json
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi.testclient import TestClient

from dominio_api.main import create_app
from dominio_api.settings import Settings, load_settings
from dominio_api.storage import InMemoryKeyValueStore


class _FakeUpstream:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.batch_payloads: list[dict] = []
        self.explode_on_clients = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append((request.method, path))
        if path == "/oauth/token":
            tokens = {"access_token": "upstream-access", "expires_in": 3600, "sub": "user-1"}
            grant_type = parse_qs(request.content.decode("utf-8"))["grant_type"][0]
            if grant_type == "authorization_code":
                tokens["refresh_token"] = "upstream-refresh"
            return httpx.Response(200, json=tokens)
        if path == "/clients" and request.method == "GET":
            if self.explode_on_clients:
                raise RuntimeError("secret internal detail")
            return httpx.Response(200, json=[{"id": "1", "name": "Padaria Central"}])
        if path.startswith("/clients/") and request.method == "PUT":
            return httpx.Response(200, json={"enabled": json.loads(request.content)["enabled"]})
        if path == "/invoice-integration":
            return httpx.Response(200, json={"protocolId": "p-single"})
        if path == "/invoice-integration/batch":
            self.batch_payloads.append(json.loads(request.content))
            return httpx.Response(200, json={"protocolId": "p-batch"})
        if path == "/protocols/p-1":
            return httpx.Response(200, json={"status": "COMPLETED", "progress": 100})
        if path.startswith("/protocols/"):
            return httpx.Response(404, json={"error": "not found"})
        if path == "/health":
            return httpx.Response(200, json={"ok": True})
        return httpx.Response(500)


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    monkeypatch.setenv("ENVIRONMENT", "development")
    return replace(
        load_settings(),
        upstream_base_url="https://api.example.com",
        oauth_authorize_url="https://auth.example.com",
        oauth_client_id="client-id",
        oauth_client_secret="client-secret",
        oauth_audience="dominio-api",
    )


@pytest.fixture
def upstream() -> _FakeUpstream:
    return _FakeUpstream()


@pytest.fixture
def client(settings: Settings, upstream: _FakeUpstream) -> TestClient:
    app = create_app(
        settings,
        store=InMemoryKeyValueStore(),
        upstream_transport=httpx.MockTransport(upstream),
        sleep_fn=lambda _seconds: None,
    )
    return TestClient(app, raise_server_exceptions=False)


def _login(client: TestClient) -> dict[str, str]:
    login = client.get("/auth/login", follow_redirects=False)
    assert login.status_code == 302
    state = parse_qs(urlparse(login.headers["location"]).query)["state"][0]

    callback = client.get("/auth/callback", params={"code": "auth-code", "state": state})
    assert callback.status_code == 200
    return {"Authorization": f"Bearer {callback.json()['tokenKey']}"}


def test_health_carries_trace_id(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.headers["x-trace-id"]


def test_upstream_health(client: TestClient) -> None:
    response = client.get("/health/upstream")

    assert response.status_code == 200
    assert response.json()["healthy"] is True


def test_api_requires_credentials(client: TestClient) -> None:
    response = client.get("/api/clients")

    assert response.status_code == 401
    body = response.json()
    assert body["error"] == "MissingCredentials"
    assert body["traceId"] == response.headers["x-trace-id"]


def test_unknown_bearer_handle_is_rejected(client: TestClient) -> None:
    response = client.get("/api/clients", headers={"Authorization": "Bearer nope"})

    assert response.status_code == 401
    assert response.json()["error"] == "InvalidCredentials"


def test_login_redirects_to_authorize_endpoint(client: TestClient) -> None:
    response = client.get("/auth/login", follow_redirects=False)

    location = urlparse(response.headers["location"])
    query = parse_qs(location.query)
    assert location.netloc == "auth.example.com"
    assert location.path == "/authorize"
    assert query["redirect_uri"] == ["http://testserver/auth/callback"]


def test_callback_error_paths(client: TestClient) -> None:
    oauth_error = client.get("/auth/callback", params={"error": "access_denied"})
    missing = client.get("/auth/callback", params={"code": "c"})
    forged = client.get("/auth/callback", params={"code": "c", "state": "forged"})

    assert (oauth_error.status_code, oauth_error.json()["error"]) == (400, "OAuthError")
    assert (missing.status_code, missing.json()["error"]) == (400, "MissingParameters")
    assert (forged.status_code, forged.json()["error"]) == (400, "InvalidState")


def test_refresh_requires_token(client: TestClient) -> None:
    response = client.post("/auth/refresh", json={})

    assert response.status_code == 400
    assert response.json()["error"] == "MissingRefreshToken"


def test_refresh_returns_new_tokens(client: TestClient) -> None:
    response = client.post("/auth/refresh", json={"refreshToken": "old-refresh"})

    assert response.status_code == 200
    assert response.json() == {
        "accessToken": "upstream-access",
        "refreshToken": "old-refresh",
        "expiresIn": 3600,
    }


def test_refresh_by_token_key_renews_stored_credential(
    client: TestClient,
    upstream: _FakeUpstream,
) -> None:
    headers = _login(client)
    token_key = headers["Authorization"].removeprefix("Bearer ")

    response = client.post("/auth/refresh", json={"tokenKey": token_key})

    assert response.status_code == 200
    assert response.json()["tokenKey"] == token_key
    assert response.json()["expiresIn"] == 3600
    assert upstream.calls.count(("POST", "/oauth/token")) == 2
    assert client.get("/api/integration", headers=headers).status_code == 200


def test_refresh_by_unknown_token_key_is_rejected(client: TestClient) -> None:
    response = client.post("/auth/refresh", json={"tokenKey": "unknown"})

    assert response.status_code == 401
    assert response.json()["error"] == "InvalidCredentials"


def test_logout_revokes_handle(client: TestClient) -> None:
    headers = _login(client)

    assert client.post("/auth/logout", headers=headers).status_code == 204
    assert client.get("/api/integration", headers=headers).status_code == 401


def test_clients_listing_is_cached(client: TestClient, upstream: _FakeUpstream) -> None:
    headers = _login(client)

    first = client.get("/api/clients", headers=headers)
    second = client.get("/api/clients", headers=headers)

    assert first.headers["X-Cache"] == "MISS"
    assert second.headers["X-Cache"] == "HIT"
    assert second.json()["data"][0]["name"] == "Padaria Central"
    assert upstream.calls.count(("GET", "/clients")) == 1


def test_client_toggle_invalidates_listing(client: TestClient) -> None:
    headers = _login(client)
    client.get("/api/clients", headers=headers)

    toggle = client.post("/api/clients", headers=headers, json={"clientId": "1", "enabled": False})
    after = client.get("/api/clients", headers=headers)

    assert toggle.status_code == 200
    assert toggle.json()["enabled"] is False
    assert after.headers["X-Cache"] == "MISS"


def test_upload_and_list_documents(client: TestClient, nfe_xml: str) -> None:
    headers = _login(client)

    upload = client.post(
        "/api/documents/upload",
        headers=headers,
        files={"document": ("nota.xml", nfe_xml.encode("utf-8"), "application/xml")},
        data={"clientId": "c-1"},
    )
    listing = client.get("/api/documents", headers=headers, params={"clientId": "c-1"})

    assert upload.status_code == 200
    assert upload.json()["protocolId"] == "p-single"
    assert upload.json()["documentType"] == "NFe"
    assert listing.json()["total"] == 1
    assert listing.json()["data"][0]["protocolId"] == "p-single"


def test_upload_rejects_invalid_document(client: TestClient, unbalanced_xml: str) -> None:
    response = client.post(
        "/api/documents/upload",
        headers=_login(client),
        files={"document": ("bad.xml", unbalanced_xml.encode("utf-8"), "application/xml")},
        data={"clientId": "c-1"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "InvalidDocument"


def test_batch_reports_partial_failures(
    client: TestClient,
    upstream: _FakeUpstream,
    nfe_xml: str,
    cte_xml: str,
    unbalanced_xml: str,
) -> None:
    response = client.post(
        "/api/documents/batch",
        headers=_login(client),
        json={
            "documents": [
                {"fileName": "nfe.xml", "clientId": "c-1", "content": nfe_xml},
                {"fileName": "broken.xml", "clientId": "c-1", "content": unbalanced_xml},
                {"fileName": "cte.xml", "clientId": "c-1", "content": cte_xml},
            ]
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["protocolId"] == "p-batch"
    assert body["processed"] == 2
    assert body["errorCount"] == 1
    assert body["errors"][0]["index"] == 1
    assert [item["index"] for item in body["results"]] == [0, 2]
    assert len(upstream.batch_payloads[0]["documents"]) == 2


def test_empty_batch_is_rejected(client: TestClient) -> None:
    response = client.post("/api/documents/batch", headers=_login(client), json={"documents": []})

    assert response.status_code == 400
    assert response.json()["error"] == "EmptyBatch"


def test_status_lookup_uses_cache(client: TestClient, upstream: _FakeUpstream) -> None:
    headers = _login(client)

    first = client.get("/api/status/p-1", headers=headers)
    second = client.get("/api/status/p-1", headers=headers)

    assert first.headers["X-Cache"] == "MISS"
    assert second.headers["X-Cache"] == "HIT"
    assert second.json()["status"] == "completed"
    assert upstream.calls.count(("GET", "/protocols/p-1")) == 1


def test_unknown_protocol_is_not_found(client: TestClient) -> None:
    response = client.get("/api/status/missing", headers=_login(client))

    assert response.status_code == 404
    assert response.json()["error"] == "ProtocolNotFound"
    assert response.json()["protocolId"] == "missing"


def test_api_key_issuance_and_use(client: TestClient) -> None:
    issued = client.post("/api/api-keys", headers=_login(client), json={"permissions": ["read"]})

    assert issued.status_code == 201
    api_key_headers = {"X-API-Key": issued.json()["apiKey"]}
    info = client.get("/api/integration", headers=api_key_headers)
    assert info.status_code == 200
    assert info.json()["maxBatchSize"] == 1000
    assert "MDFe" in info.json()["supportedDocuments"]

    nested = client.post("/api/api-keys", headers=api_key_headers, json={})
    assert nested.status_code == 403


def test_rate_limit_rejects_with_headers(settings: Settings, upstream: _FakeUpstream) -> None:
    app = create_app(
        replace(settings, api_rate_limit_requests=2),
        store=InMemoryKeyValueStore(),
        upstream_transport=httpx.MockTransport(upstream),
    )
    client = TestClient(app)

    statuses = [client.get("/api/integration").status_code for _ in range(3)]
    limited = client.get("/api/integration")

    assert statuses == [401, 401, 429]
    assert limited.json()["error"] == "RateLimited"
    assert limited.json()["limit"] == 2
    assert limited.headers["X-RateLimit-Remaining"] == "0"


def test_unhandled_errors_hide_details(client: TestClient, upstream: _FakeUpstream) -> None:
    upstream.explode_on_clients = True

    response = client.get("/api/clients", headers=_login(client))

    assert response.status_code == 500
    assert response.json()["error"] == "InternalError"
    assert "secret" not in response.text
