import pytest

from prompt_studio import runtime as app_module
from prompt_studio.backends.identity import InMemoryIdentityBackend
from prompt_studio.backends.ledger import InMemoryLedger
from prompt_studio.backends.payments import StaticPixPaymentBackend
from prompt_studio.backends.settings import InMemorySettingsStore
from prompt_studio.services.generation_service import GenerationService


class _StubGeneration:
    available = True

    def __init__(self):
        self.calls = []

    def generate_speech(self, text, voice):
        self.calls.append(("speech", text, voice))
        return "data:audio/wav;base64,AAAA"


@pytest.fixture()
def client():
    identity = InMemoryIdentityBackend()
    settings = InMemorySettingsStore()
    backend = StaticPixPaymentBackend(settings, InMemoryLedger(), confirm_after_seconds=3600)
    app_module.install_backends(identity, settings, backend, generation_service=_StubGeneration())
    app_module.rate_limiter.reset()
    app_module.app.config["TESTING"] = True
    with app_module.app.test_client() as test_client:
        yield test_client


@pytest.fixture(autouse=True)
def disable_sentry(monkeypatch):
    monkeypatch.setattr(app_module, "sentry_sdk", None)


@pytest.mark.parametrize(
    "method,path",
    [
        ("get", "/api/me"),
        ("post", "/api/purchases"),
        ("get", "/api/purchase-history"),
        ("post", "/api/generate/speech"),
        ("get", "/api/affiliate/dashboard"),
        ("get", "/api/admin/users"),
        ("post", "/api/admin/users/user-1/credits"),
    ],
)
def test_protected_endpoints_require_sign_in(client, method, path):
    response = getattr(client, method)(path, json={"text": "hello", "amount": 5})

    assert response.status_code == 401
    assert "error" in response.get_json()


def test_admin_endpoints_reject_regular_users(client, monkeypatch):
    monkeypatch.setattr(app_module, "verify_firebase_token", lambda _request: {"uid": "user-1"})

    assert client.get("/api/admin/users").status_code == 403
    assert client.post("/api/admin/users/user-3/credits", json={"amount": 5}).status_code == 403
    assert client.post("/api/admin/pix-key", json={"pix_key": "x"}).status_code == 403


def test_affiliate_dashboard_rejects_non_affiliates(client, monkeypatch):
    monkeypatch.setattr(app_module, "verify_firebase_token", lambda _request: {"uid": "user-1"})

    response = client.get("/api/affiliate/dashboard")

    assert response.status_code == 403


def test_checkout_rate_limited_returns_retry_after(client, monkeypatch):
    captured = []
    monkeypatch.setattr(app_module, "verify_firebase_token", lambda _request: {"uid": "user-1"})
    monkeypatch.setattr(app_module, "check_rate_limit", lambda **_kwargs: (False, 21))
    monkeypatch.setattr(app_module, "log_rate_limit_hit", lambda name, retry: captured.append((name, retry)) or True)

    response = client.post("/api/purchases", json={"package_id": "pack_10"})

    assert response.status_code == 429
    assert response.headers.get("Retry-After") == "21"
    body = response.get_json()
    assert body["retry_after_seconds"] == 21
    assert "too many checkout attempts" in body["error"].lower()
    assert captured == [("checkout", 21)]


def test_generation_rate_limited_does_not_spend(client, monkeypatch):
    captured = []
    monkeypatch.setattr(app_module, "verify_firebase_token", lambda _request: {"uid": "user-1"})
    monkeypatch.setattr(app_module, "check_rate_limit", lambda **_kwargs: (False, 7))
    monkeypatch.setattr(app_module, "log_rate_limit_hit", lambda name, retry: captured.append((name, retry)) or True)

    response = client.post("/api/generate/speech", json={"text": "Hello there", "voice": "Kore"})

    assert response.status_code == 429
    assert response.headers.get("Retry-After") == "7"
    assert captured == [("generation", 7)]
    assert app_module.sessions.get("user-1").credits == 10
    assert app_module.generation.calls == []


def test_login_rate_limited_returns_retry_after(client, monkeypatch):
    monkeypatch.setattr(app_module, "check_rate_limit", lambda **_kwargs: (False, 30))

    response = client.post("/api/auth/login", json={"email": "user@demo.com", "password": "password"})

    assert response.status_code == 429
    assert "too many sign-in attempts" in response.get_json()["error"].lower()


def test_generation_disabled_returns_503_without_spending(client, monkeypatch):
    monkeypatch.setattr(app_module, "verify_firebase_token", lambda _request: {"uid": "user-1"})
    monkeypatch.setattr(app_module, "generation", GenerationService(None))

    response = client.post("/api/generate/speech", json={"text": "Hello there", "voice": "Kore"})

    assert response.status_code == 503
    assert app_module.sessions.get("user-1").credits == 10


def test_speech_text_over_limit_is_rejected_before_spending(client, monkeypatch):
    monkeypatch.setattr(app_module, "verify_firebase_token", lambda _request: {"uid": "user-1"})

    response = client.post("/api/generate/speech", json={"text": "x" * 1001, "voice": "Kore"})

    assert response.status_code == 400
    assert "1000 characters" in response.get_json()["error"]
    assert app_module.sessions.get("user-1").credits == 10


def test_unsupported_video_model_is_rejected_before_spending(client, monkeypatch):
    monkeypatch.setattr(app_module, "verify_firebase_token", lambda _request: {"uid": "user-1"})

    response = client.post("/api/generate/video", json={"prompt": "a cat surfing", "model": "openai-sora"})

    assert response.status_code == 400
    assert "not supported" in response.get_json()["error"].lower()
    assert app_module.sessions.get("user-1").credits == 10


def test_grok_image_model_is_rejected_before_spending(client, monkeypatch):
    monkeypatch.setattr(app_module, "verify_firebase_token", lambda _request: {"uid": "user-1"})

    response = client.post("/api/generate/image", json={"prompt": "a red bicycle", "model": "grok-imagine"})

    assert response.status_code == 400
    assert "not yet integrated" in response.get_json()["error"].lower()
    assert app_module.sessions.get("user-1").credits == 10


def test_request_id_is_echoed(client):
    response = client.get("/healthz", headers={"X-Request-ID": "req-abc"})

    assert response.status_code == 200
    assert response.headers.get("X-Request-ID") == "req-abc"
    assert response.get_json()["prompts"]["count"] > 0


def test_pix_key_length_is_limited(client, monkeypatch):
    monkeypatch.setattr(app_module, "verify_firebase_token", lambda _request: {"uid": "user-2"})

    response = client.post("/api/admin/pix-key", json={"pix_key": "k" * 78})

    assert response.status_code == 400
    assert app_module.settings.get("pix_key") is None
