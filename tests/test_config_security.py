import pytest

from prompt_studio import runtime as app_module
from prompt_studio.config import AppConfig, load_config


def test_load_config_requires_secret_key_in_non_dev(monkeypatch):
    monkeypatch.setenv("RENDER", "true")
    monkeypatch.delenv("FLASK_ENV", raising=False)
    monkeypatch.delenv("SENTRY_ENVIRONMENT", raising=False)
    monkeypatch.delenv("ENV", raising=False)
    monkeypatch.delenv("FLASK_SECRET_KEY", raising=False)

    with pytest.raises(RuntimeError):
        load_config()


def test_load_config_allows_missing_secret_in_dev(monkeypatch):
    monkeypatch.delenv("RENDER", raising=False)
    monkeypatch.setenv("FLASK_ENV", "development")
    monkeypatch.delenv("SENTRY_ENVIRONMENT", raising=False)
    monkeypatch.delenv("FLASK_SECRET_KEY", raising=False)

    cfg = load_config()
    assert cfg.flask_secret_key == ""


def test_payment_provider_follows_stripe_key(monkeypatch):
    monkeypatch.setenv("FLASK_ENV", "development")
    monkeypatch.delenv("SENTRY_ENVIRONMENT", raising=False)
    monkeypatch.delenv("PAYMENT_PROVIDER", raising=False)
    monkeypatch.delenv("STRIPE_SECRET_KEY", raising=False)
    assert load_config().payment_provider == "static_pix"

    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_123")
    assert load_config().payment_provider == "stripe"

    monkeypatch.setenv("PAYMENT_PROVIDER", "bitcoin")
    assert load_config().payment_provider == "stripe"


def test_numeric_settings_are_clamped(monkeypatch):
    monkeypatch.setenv("FLASK_ENV", "development")
    monkeypatch.delenv("SENTRY_ENVIRONMENT", raising=False)
    monkeypatch.setenv("PAYMENT_POLL_INTERVAL_SECONDS", "0")
    monkeypatch.setenv("WELCOME_CREDITS", "not-a-number")
    monkeypatch.setenv("DEFAULT_COMMISSION_RATE", "7")
    monkeypatch.setenv("ADMIN_EMAILS", "Boss@Example.com, ops@example.com ,")

    cfg = load_config()

    assert cfg.payment_poll_interval_seconds == 0.05
    assert cfg.welcome_credits == 5
    assert cfg.default_commission_rate == 1.0
    assert cfg.admin_emails == frozenset({"boss@example.com", "ops@example.com"})


def _broken_certificate(_source):
    raise ValueError("Invalid service account certificate.")


def test_requested_firebase_must_start_outside_dev(monkeypatch):
    monkeypatch.setattr(app_module.credentials, "Certificate", _broken_certificate)
    config = AppConfig(runtime_env="production", identity_backend="firebase", firebase_credentials='{"type": "service_account"}')

    with pytest.raises(RuntimeError, match="Firebase failed to initialize"):
        app_module.init_firestore(config)


def test_firebase_failure_in_dev_falls_back_with_error(monkeypatch):
    monkeypatch.setattr(app_module.credentials, "Certificate", _broken_certificate)
    config = AppConfig(runtime_env="development", identity_backend="firebase", firebase_credentials='{"type": "service_account"}')

    db, error = app_module.init_firestore(config)

    assert db is None
    assert "Invalid service account certificate" in error
    assert app_module.init_firestore(AppConfig(identity_backend="memory")) == (None, "")
