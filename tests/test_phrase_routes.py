"""HTTP tests for the phrase register/claim endpoints."""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from rendezvous.adapters.kv.base import KVEngineError
from rendezvous.adapters.kv.in_memory import InMemoryKVEngine
from rendezvous.api.routes import phrase as phrase_routes
from rendezvous.api.routes.phrase import get_rendezvous_store
from rendezvous.core import rate_limit as rate_limit_module
from rendezvous.core.app_factory import create_app
from rendezvous.core.config import settings
from rendezvous.core.errors import PhraseConflictError
from rendezvous.services.rendezvous_store import RendezvousStore

MADDR = "/ip4/203.0.113.7/tcp/4001/p2p/12D3KooWExample"


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


def _register(client: TestClient, phrase: str = "5-cat-dog", maddr: str = MADDR, **kwargs):
    return client.post("/phrase", json={"phrase": phrase, "maddr": maddr}, **kwargs)


class TestRegister:
    def test_register_returns_201_with_item(self, client: TestClient) -> None:
        response = _register(client)

        assert response.status_code == 201
        assert response.json() == {
            "message": "Address added successfully",
            "data": {"phrase": "5-cat-dog", "maddr": MADDR},
        }

    def test_duplicate_register_returns_409(self, client: TestClient) -> None:
        assert _register(client).status_code == 201

        response = _register(client, maddr="/ip4/10.0.0.1/tcp/1")
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "conflict"

        claimed = client.get("/phrase/5-cat-dog")
        assert claimed.json()["maddr"] == MADDR

    @pytest.mark.parametrize("phrase", ["101-cat-dog", "5-ca-dog", "05-cat-dog", "5-CAT-dog"])
    def test_malformed_phrase_returns_400(self, client: TestClient, phrase: str) -> None:
        response = _register(client, phrase=phrase)

        assert response.status_code == 400
        body = response.json()
        assert body["error"]["code"] == "invalid_format"
        assert body["error"]["message"] == "Invalid phrase format"

    @pytest.mark.parametrize(
        "body",
        [
            {"phrase": "5-cat-dog"},
            {"maddr": MADDR},
            {"phrase": "5-cat-dog", "maddr": ""},
            {"phrase": "", "maddr": MADDR},
        ],
    )
    def test_incomplete_body_returns_422_and_spends_budget(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch, body: dict
    ) -> None:
        monkeypatch.setattr(settings.rate_limit, "requests", 1)

        assert client.post("/phrase", json=body).status_code == 422
        assert _register(client).status_code == 429


class TestClaim:
    def test_claim_returns_item_once(self, client: TestClient) -> None:
        _register(client)

        first = client.get("/phrase/5-cat-dog")
        assert first.status_code == 200
        assert first.json() == {"phrase": "5-cat-dog", "maddr": MADDR}

        second = client.get("/phrase/5-cat-dog")
        assert second.status_code == 404
        assert second.json()["error"]["code"] == "not_found"

    def test_reregister_after_claim(self, client: TestClient) -> None:
        _register(client, maddr="addr-one")
        client.get("/phrase/5-cat-dog")

        assert _register(client, maddr="addr-two").status_code == 201
        assert client.get("/phrase/5-cat-dog").json()["maddr"] == "addr-two"

    def test_unknown_phrase_returns_404(self, client: TestClient) -> None:
        assert client.get("/phrase/3-never-seen").status_code == 404

    def test_malformed_phrase_is_reported_as_not_found(self, client: TestClient) -> None:
        response = client.get("/phrase/999-nope-x")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "not_found"

    def test_malformed_phrase_can_be_reported_as_invalid(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings.app, "claim_invalid_as_not_found", False)

        response = client.get("/phrase/999-nope-x")
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_format"


class TestRateLimiting:
    def test_blocks_with_429_after_budget(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings.rate_limit, "requests", 2)
        monkeypatch.setattr(settings.rate_limit, "include_headers", True)

        assert _register(client).status_code == 201
        assert client.get("/phrase/5-cat-dog").status_code == 200

        blocked = client.get("/phrase/5-cat-dog")
        assert blocked.status_code == 429
        assert blocked.json()["error"]["code"] == "rate_limited"
        assert int(blocked.headers["Retry-After"]) > 0
        assert blocked.headers["X-RateLimit-Limit"] == "2"
        assert blocked.headers["X-RateLimit-Remaining"] == "0"
        assert "X-RateLimit-Reset" in blocked.headers

    def test_rate_limit_precedes_format_check(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings.rate_limit, "requests", 1)

        assert _register(client, phrase="bogus").status_code == 400
        assert _register(client, phrase="bogus").status_code == 429

    @pytest.mark.parametrize(
        "request_kwargs",
        [
            {"json": {"phrase": "", "maddr": "a"}},
            {"json": {"phrase": 7, "maddr": "a"}},
            {"json": {"maddr": MADDR}},
            {"content": b'{"phrase": "5-cat', "headers": {"Content-Type": "application/json"}},
        ],
    )
    def test_over_budget_client_gets_429_for_malformed_bodies(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch, request_kwargs: dict
    ) -> None:
        monkeypatch.setattr(settings.rate_limit, "requests", 1)

        assert _register(client).status_code == 201

        blocked = client.post("/phrase", **request_kwargs)
        assert blocked.status_code == 429
        assert blocked.json()["error"]["code"] == "rate_limited"
        assert "Retry-After" in blocked.headers

    def test_request_is_charged_once(self, client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings.rate_limit, "requests", 3)

        assert _register(client).status_code == 201
        assert client.get("/phrase/5-cat-dog").status_code == 200
        assert client.get("/phrase/5-cat-dog").status_code == 404
        assert client.get("/phrase/5-cat-dog").status_code == 429

    def test_health_is_not_rate_limited(self, client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings.rate_limit, "requests", 1)

        for _ in range(3):
            assert client.get("/health").status_code == 200

    def test_rate_limit_headers_can_be_disabled(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings.rate_limit, "requests", 1)
        monkeypatch.setattr(settings.rate_limit, "include_headers", False)

        client.get("/phrase/1-abc-def")
        blocked = client.get("/phrase/1-abc-def")

        assert blocked.status_code == 429
        assert "Retry-After" in blocked.headers
        assert "X-RateLimit-Limit" not in blocked.headers

    def test_forwarded_header_separates_identities_when_trusted(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings.rate_limit, "requests", 1)
        monkeypatch.setattr(settings.app, "client_ip_header", "X-Forwarded-For")

        first = client.get("/phrase/1-abc-def", headers={"X-Forwarded-For": "10.0.0.1, 172.16.0.1"})
        second = client.get("/phrase/1-abc-def", headers={"X-Forwarded-For": "10.0.0.2"})
        repeat = client.get("/phrase/1-abc-def", headers={"X-Forwarded-For": "10.0.0.1"})

        assert first.status_code == 404
        assert second.status_code == 404
        assert repeat.status_code == 429

    def test_forwarded_header_ignored_when_not_trusted(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings.rate_limit, "requests", 1)
        monkeypatch.setattr(settings.app, "client_ip_header", None)

        client.get("/phrase/1-abc-def", headers={"X-Forwarded-For": "10.0.0.1"})
        spoofed = client.get("/phrase/1-abc-def", headers={"X-Forwarded-For": "10.0.0.2"})

        assert spoofed.status_code == 429

    def test_disabled_rate_limiting(self, client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings.rate_limit, "enabled", False)
        monkeypatch.setattr(settings.rate_limit, "requests", 1)

        for _ in range(5):
            assert client.get("/phrase/1-abc-def").status_code == 404
        assert rate_limit_module.get_rate_limiter() is None


class TestStoreUnavailable:
    def test_engine_failure_returns_503(self, app, client: TestClient) -> None:
        class BrokenEngine(InMemoryKVEngine):
            def get(self, key: bytes) -> bytes | None:
                raise KVEngineError("connection reset")

            def exists(self, key: bytes) -> bool:
                raise KVEngineError("connection reset")

        store = RendezvousStore(BrokenEngine())
        app.dependency_overrides[get_rendezvous_store] = lambda: store

        register = _register(client)
        claim = client.get("/phrase/5-cat-dog")
        ready = client.get("/health/ready")

        assert register.status_code == 503
        assert claim.status_code == 503
        assert ready.status_code == 503
        assert register.json()["error"]["code"] == "store_unavailable"
        assert "connection reset" not in register.text


@pytest.mark.parametrize(
    ("method", "path", "operation"),
    [
        ("POST", "/phrase", "register"),
        ("POST", "/phrase/", None),
        ("GET", "/phrase/5-cat-dog", "claim"),
        ("GET", "/phrase", None),
        ("GET", "/health", None),
        ("OPTIONS", "/phrase", None),
    ],
)
def test_phrase_operation_classifies_requests(method: str, path: str, operation) -> None:
    request = Request({"type": "http", "method": method, "path": path, "headers": [], "query_string": b""})

    assert rate_limit_module.phrase_operation(request) == operation


class TestLogRedaction:
    def test_claim_errors_never_log_the_phrase(
        self,
        client: TestClient,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        monkeypatch.setattr(settings.rate_limit, "requests", 1)
        caplog.set_level(logging.DEBUG, logger="rendezvous")

        assert client.get("/phrase/42-secret-phrase").status_code == 404
        assert client.get("/phrase/42-secret-phrase").status_code == 429

        records = [r for r in caplog.records if r.name.startswith("rendezvous")]
        handled = [r for r in records if r.getMessage() == "app_error_handled"]
        assert len(handled) == 2
        assert handled[0].route == "/phrase/{phrase}"
        for record in records:
            assert "secret-phrase" not in repr(vars(record))


class TestStoreSingleton:
    def test_concurrent_first_use_builds_one_store(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def _slow_engine(store_settings=None):
            time.sleep(0.05)
            return InMemoryKVEngine()

        monkeypatch.setattr(phrase_routes, "create_kv_engine", _slow_engine)
        barrier = threading.Barrier(2)

        def _register_on_first_use(i: int):
            barrier.wait()
            store = get_rendezvous_store()
            try:
                store.register("5-cat-dog", {"phrase": "5-cat-dog", "maddr": f"addr-{i}"})
            except PhraseConflictError:
                return store, "conflict"
            return store, "ok"

        with ThreadPoolExecutor(max_workers=2) as pool:
            (first, first_outcome), (second, second_outcome) = pool.map(
                _register_on_first_use, range(2)
            )

        assert first is second
        assert sorted([first_outcome, second_outcome]) == ["conflict", "ok"]

    def test_store_rejects_foreign_payload_on_claim(self, client: TestClient) -> None:
        store = get_rendezvous_store()
        store.register("5-cat-dog", {"unexpected": True})

        response = client.get("/phrase/5-cat-dog")

        assert response.status_code == 503
        assert store.engine.exists(b"5-cat-dog") is True


class TestHealth:
    def test_health_check_returns_ok(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_readiness_probes_store(self, client: TestClient) -> None:
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "store": "ok"}


class TestCors:
    def test_preflight_allows_configured_origin(self, client: TestClient) -> None:
        response = client.options(
            "/phrase",
            headers={
                "Origin": "https://fileferry.xyz",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Content-Type",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "https://fileferry.xyz"

    def test_preflight_rejects_other_origin(self, client: TestClient) -> None:
        response = client.options(
            "/phrase",
            headers={
                "Origin": "https://evil.example",
                "Access-Control-Request-Method": "POST",
            },
        )

        assert "access-control-allow-origin" not in response.headers


def test_openapi_documents_phrase_errors(client: TestClient) -> None:
    schema = client.get("/openapi.json").json()

    post_responses = schema["paths"]["/phrase"]["post"]["responses"]
    get_responses = schema["paths"]["/phrase/{phrase}"]["get"]["responses"]
    assert {"201", "400", "409", "429", "503"} <= set(post_responses)
    assert {"200", "404", "429", "503"} <= set(get_responses)
    assert {t["name"] for t in schema["tags"]} >= {"Phrase", "Health"}
