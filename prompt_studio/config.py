import os
from dataclasses import dataclass, field


DEV_ENV_NAMES = {'development', 'dev', 'local', 'test'}


def safe_int_env(name, default=0, minimum=1, maximum=100000):
    raw = os.getenv(name, str(default)).strip()
    try:
        value = int(raw)
    except Exception:
        value = int(default)
    return min(max(value, minimum), maximum)


def safe_float_env(name, default=0.0, minimum=0.0, maximum=1.0):
    raw = os.getenv(name, str(default)).strip()
    try:
        value = float(raw)
    except Exception:
        return default
    return min(max(value, minimum), maximum)


def parse_csv_env(name, lowercase=False):
    values = set()
    for part in (os.getenv(name, '') or '').split(','):
        part = part.strip()
        if part:
            values.add(part.lower() if lowercase else part)
    return values


def resolve_runtime_env():
    return (
        os.getenv('SENTRY_ENVIRONMENT')
        or os.getenv('FLASK_ENV')
        or os.getenv('ENV')
        or ('production' if os.getenv('RENDER') else 'development')
    ).strip().lower()


@dataclass(frozen=True)
class AppConfig:
    """Central config object, built from the environment by load_config()."""

    flask_secret_key: str = ''
    log_level: str = 'INFO'
    runtime_env: str = 'development'
    sentry_dsn: str = ''
    sentry_environment: str = 'production'
    sentry_release: str = 'prompt-studio'
    sentry_traces_sample_rate: float = 0.0

    gemini_api_key: str = ''

    identity_backend: str = 'memory'
    firebase_credentials: str = ''
    firebase_web_api_key: str = ''
    admin_emails: frozenset = field(default_factory=frozenset)

    payment_provider: str = 'static_pix'
    stripe_secret_key: str = ''
    stripe_webhook_secret: str = ''
    pix_merchant_name: str = 'AI PROMPT GEN'
    pix_merchant_city: str = 'SAO PAULO'
    pix_demo_confirm_seconds: int = 10
    payment_poll_interval_seconds: float = 3.0
    payment_auto_close_seconds: float = 3.0

    welcome_credits: int = 5
    default_commission_rate: float = 0.10

    checkout_rate_limit_window_seconds: int = 600
    checkout_rate_limit_max_requests: int = 6
    generation_rate_limit_window_seconds: int = 60
    generation_rate_limit_max_requests: int = 20

    @property
    def is_dev_like(self):
        return self.runtime_env in DEV_ENV_NAMES


def load_config() -> AppConfig:
    runtime_env = resolve_runtime_env()
    flask_secret_key = os.getenv('FLASK_SECRET_KEY', '') or ''
    if runtime_env not in DEV_ENV_NAMES and not flask_secret_key.strip():
        raise RuntimeError('FLASK_SECRET_KEY must be set in non-development environments.')

    stripe_secret_key = (os.getenv('STRIPE_SECRET_KEY', '') or '').strip()
    default_provider = 'stripe' if stripe_secret_key else 'static_pix'
    payment_provider = (os.getenv('PAYMENT_PROVIDER', default_provider) or default_provider).strip().lower()
    if payment_provider not in {'static_pix', 'stripe'}:
        payment_provider = default_provider

    firebase_credentials = (os.getenv('FIREBASE_CREDENTIALS', '') or '').strip()
    default_identity = 'firebase' if (firebase_credentials or os.path.exists('firebase-credentials.json')) else 'memory'
    identity_backend = (os.getenv('IDENTITY_BACKEND', default_identity) or default_identity).strip().lower()
    if identity_backend not in {'memory', 'firebase'}:
        identity_backend = default_identity

    return AppConfig(
        flask_secret_key=flask_secret_key,
        log_level=(os.getenv('LOG_LEVEL', 'INFO') or 'INFO').strip().upper(),
        runtime_env=runtime_env,
        sentry_dsn=(os.getenv('SENTRY_DSN_BACKEND', '') or '').strip(),
        sentry_environment=(os.getenv('SENTRY_ENVIRONMENT', os.getenv('FLASK_ENV', 'production')) or 'production').strip(),
        sentry_release=(os.getenv('SENTRY_RELEASE', 'prompt-studio') or 'prompt-studio').strip(),
        sentry_traces_sample_rate=safe_float_env('SENTRY_TRACES_SAMPLE_RATE', 0.0),
        gemini_api_key=(os.getenv('GEMINI_API_KEY', '') or '').strip(),
        identity_backend=identity_backend,
        firebase_credentials=firebase_credentials,
        firebase_web_api_key=(os.getenv('FIREBASE_WEB_API_KEY', '') or '').strip(),
        admin_emails=frozenset(parse_csv_env('ADMIN_EMAILS', lowercase=True)),
        payment_provider=payment_provider,
        stripe_secret_key=stripe_secret_key,
        stripe_webhook_secret=(os.getenv('STRIPE_WEBHOOK_SECRET', '') or '').strip(),
        pix_merchant_name=(os.getenv('PIX_MERCHANT_NAME', 'AI PROMPT GEN') or 'AI PROMPT GEN').strip(),
        pix_merchant_city=(os.getenv('PIX_MERCHANT_CITY', 'SAO PAULO') or 'SAO PAULO').strip(),
        pix_demo_confirm_seconds=safe_int_env('PIX_DEMO_CONFIRM_SECONDS', 10, minimum=0, maximum=3600),
        payment_poll_interval_seconds=safe_float_env('PAYMENT_POLL_INTERVAL_SECONDS', 3.0, minimum=0.05, maximum=60.0),
        payment_auto_close_seconds=safe_float_env('PAYMENT_AUTO_CLOSE_SECONDS', 3.0, minimum=0.0, maximum=60.0),
        welcome_credits=safe_int_env('WELCOME_CREDITS', 5, minimum=0, maximum=1000),
        default_commission_rate=safe_float_env('DEFAULT_COMMISSION_RATE', 0.10),
        checkout_rate_limit_window_seconds=safe_int_env('CHECKOUT_RATE_LIMIT_WINDOW_SECONDS', 600, minimum=10, maximum=86400),
        checkout_rate_limit_max_requests=safe_int_env('CHECKOUT_RATE_LIMIT_MAX_REQUESTS', 6, minimum=1, maximum=100),
        generation_rate_limit_window_seconds=safe_int_env('GENERATION_RATE_LIMIT_WINDOW_SECONDS', 60, minimum=10, maximum=3600),
        generation_rate_limit_max_requests=safe_int_env('GENERATION_RATE_LIMIT_MAX_REQUESTS', 20, minimum=1, maximum=1000),
    )
