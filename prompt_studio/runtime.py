import json
import logging
import os
import sys
import time
import uuid

import stripe
from dotenv import load_dotenv
from flask import Flask, g, jsonify, request, session
from google import genai
from google.api_core.exceptions import AlreadyExists
from werkzeug.exceptions import RequestEntityTooLarge
try:
    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration
except Exception:
    sentry_sdk = None
    FlaskIntegration = None
import firebase_admin
from firebase_admin import auth, credentials, firestore

from prompt_studio.backends.identity import FirebaseIdentityBackend, InMemoryIdentityBackend
from prompt_studio.backends.ledger import FirestoreLedger, InMemoryLedger, build_demo_transactions
from prompt_studio.backends.payments import StaticPixPaymentBackend, StripePaymentBackend
from prompt_studio.backends.settings import FirestoreSettingsStore, InMemorySettingsStore
from prompt_studio.config import load_config
from prompt_studio.logging_config import configure_logging, log_event, logger
from prompt_studio.services import (
    admin_api_service,
    affiliate_api_service,
    auth_api_service,
    auth_service,
    generation_api_service,
    payments_api_service,
    referral_service,
    site_api_service,
)
from prompt_studio.services.credit_store import SessionRegistry
from prompt_studio.services.generation_service import GenerationService
from prompt_studio.services.payment_gateway import PaymentGateway
from prompt_studio.services.rate_limit_service import RateLimiter, normalize_key_part

load_dotenv()
CONFIG = load_config()
configure_logging(CONFIG.log_level)

MAX_CONTENT_LENGTH = 40 * 1024 * 1024

app = Flask(__name__)
app.secret_key = CONFIG.flask_secret_key or os.urandom(32).hex()
app.config['MAX_CONTENT_LENGTH'] = MAX_CONTENT_LENGTH
app.config['SESSION_COOKIE_SAMESITE'] = 'Lax'
app.config['SESSION_COOKIE_HTTPONLY'] = True

if CONFIG.sentry_dsn and sentry_sdk and FlaskIntegration:
    sentry_sdk.init(
        dsn=CONFIG.sentry_dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=CONFIG.sentry_traces_sample_rate,
        send_default_pii=False,
        environment=CONFIG.sentry_environment,
        release=CONFIG.sentry_release,
    )

# --- Gemini Setup ---
if CONFIG.gemini_api_key:
    try:
        client = genai.Client(api_key=CONFIG.gemini_api_key)
    except Exception as e:
        client = None
        logger.info(f"⚠️ Gemini client disabled: {e}")
else:
    client = None
    logger.info("⚠️ GEMINI_API_KEY not set; generation features are disabled.")


# --- Firebase Setup ---
def init_firestore(config):
    """Return ``(db, error)``. Outside development a requested Firebase backend must start."""
    if config.identity_backend != 'firebase':
        return None, ''
    try:
        if os.path.exists('firebase-credentials.json'):
            cred = credentials.Certificate('firebase-credentials.json')
        else:
            if not config.firebase_credentials:
                raise ValueError("FIREBASE_CREDENTIALS is not set and firebase-credentials.json was not found.")
            cred = credentials.Certificate(json.loads(config.firebase_credentials))
        if not firebase_admin._apps:
            firebase_admin.initialize_app(cred)
        return firestore.client(), ''
    except Exception as e:
        if not config.is_dev_like:
            raise RuntimeError(f"IDENTITY_BACKEND=firebase but Firebase failed to initialize: {e}") from e
        logger.error(f"❌ Firebase initialization failed, falling back to the in-memory demo users: {e}")
        return None, str(e)


db, firebase_init_error = init_firestore(CONFIG)

# --- Stripe Setup ---
stripe.api_key = CONFIG.stripe_secret_key or None
STRIPE_WEBHOOK_SECRET = CONFIG.stripe_webhook_secret
ADMIN_EMAILS = CONFIG.admin_emails


def build_backends(config, firestore_db):
    """Construct identity, settings, ledger and payment backends once per process."""
    if firestore_db is not None:
        identity_backend = FirebaseIdentityBackend(
            firestore_db,
            auth_module=auth,
            firestore_module=firestore,
            web_api_key=config.firebase_web_api_key,
            welcome_credits=config.welcome_credits,
            default_commission_rate=config.default_commission_rate,
        )
        settings_store = FirestoreSettingsStore(firestore_db)
        transaction_ledger = FirestoreLedger(firestore_db, firestore_module=firestore, already_exists_error=AlreadyExists)
    else:
        identity_backend = InMemoryIdentityBackend(
            welcome_credits=config.welcome_credits,
            default_commission_rate=config.default_commission_rate,
        )
        settings_store = InMemorySettingsStore()
        transaction_ledger = InMemoryLedger(build_demo_transactions())

    if config.payment_provider == 'stripe':
        backend = StripePaymentBackend(stripe, transaction_ledger, secret_key=config.stripe_secret_key)
    else:
        backend = StaticPixPaymentBackend(
            settings_store,
            transaction_ledger,
            merchant_name=config.pix_merchant_name,
            merchant_city=config.pix_merchant_city,
            confirm_after_seconds=config.pix_demo_confirm_seconds,
        )
    return identity_backend, settings_store, transaction_ledger, backend


def install_backends(identity_backend, settings_store, backend, generation_service=None, config=None):
    """Bind process-wide backends and rebuild the session registry and gateway around them."""
    global identity, settings, ledger, payment_backend, sessions, gateway, generation
    config = config or CONFIG
    identity = identity_backend
    settings = settings_store
    payment_backend = backend
    ledger = backend.ledger
    sessions = SessionRegistry(identity)
    gateway = PaymentGateway(
        payment_backend,
        identity,
        sessions,
        poll_interval=config.payment_poll_interval_seconds,
        auto_close_seconds=config.payment_auto_close_seconds,
        default_commission_rate=config.default_commission_rate,
    )
    if generation_service is not None:
        generation = generation_service


identity = settings = ledger = payment_backend = sessions = gateway = None
generation = GenerationService(client)
_identity, _settings, _ledger, _payment_backend = build_backends(CONFIG, db)
install_backends(_identity, _settings, _payment_backend)
rate_limiter = RateLimiter(db=db, firestore_module=firestore if db is not None else None)
logger.info(
    f"Backends ready: identity={type(identity).__name__} payments={type(payment_backend).__name__} "
    f"generation={'on' if generation.available else 'off'}"
)


def _ctx():
    return sys.modules[__name__]


# --- Request helpers used by the handler services ---

def verify_firebase_token(req):
    return auth_service.verify_firebase_token(req, auth if db is not None else None, logger)


def current_uid():
    uid = str(session.get(auth_service.SESSION_UID_KEY, '') or '')
    if uid:
        return uid
    decoded_token = verify_firebase_token(request)
    if decoded_token:
        return str(decoded_token.get('uid', '') or '')
    return ''


def current_store():
    uid = current_uid()
    if not uid:
        return None
    return sessions.get(uid)


def is_admin(profile):
    return auth_service.is_admin_profile(profile, ADMIN_EMAILS)


def check_rate_limit(key, limit, window_seconds):
    return rate_limiter.check(key, limit, window_seconds)


def normalize_rate_limit_key_part(value, fallback='anon', max_len=120):
    return normalize_key_part(value, fallback=fallback, max_len=max_len)


def build_rate_limited_response(message, retry_after):
    response = jsonify({
        'error': message,
        'retry_after_seconds': int(max(1, retry_after)),
    })
    response.status_code = 429
    response.headers['Retry-After'] = str(int(max(1, retry_after)))
    return response


def log_rate_limit_hit(limit_name, retry_after=0):
    log_event(logging.INFO, 'rate_limit_hit', limit=limit_name, retry_after=int(retry_after))


def error_response(exc):
    return jsonify({'error': exc.message}), exc.status_code


@app.before_request
def capture_referral_code():
    if request.args.get('ref'):
        referral_service.capture_referral(session, request.args)


@app.before_request
def attach_request_id():
    g.request_id = str(request.headers.get('X-Request-ID', '') or '').strip()[:120] or uuid.uuid4().hex
    g.request_started_at = time.time()


@app.after_request
def attach_response_request_id(response):
    request_id = str(getattr(g, 'request_id', '') or '').strip()
    if request_id:
        response.headers['X-Request-ID'] = request_id
    return response


@app.errorhandler(RequestEntityTooLarge)
def handle_request_entity_too_large(_error):
    return jsonify({'error': f"Upload too large. Maximum request size is {MAX_CONTENT_LENGTH // (1024 * 1024)}MB."}), 413


# --- Route implementations (blueprints call these) ---

def index_impl():
    return site_api_service.index(_ctx(), request)


def healthz_impl():
    return site_api_service.healthz(_ctx(), request)


def get_announcement_impl():
    return site_api_service.get_announcement(_ctx(), request)


def dismiss_announcement_impl():
    return site_api_service.dismiss_announcement(_ctx(), request)


def login_impl():
    return auth_api_service.login(_ctx(), request)


def register_impl():
    return auth_api_service.register(_ctx(), request)


def logout_impl():
    return auth_api_service.logout(_ctx(), request)


def get_me_impl():
    return auth_api_service.get_me(_ctx(), request)


def generation_options_impl():
    return generation_api_service.get_options(_ctx(), request)


def video_prompt_impl():
    return generation_api_service.video_prompt(_ctx(), request)


def product_ad_prompt_impl():
    return generation_api_service.product_ad_prompt(_ctx(), request)


def influencer_prompt_impl():
    return generation_api_service.influencer_prompt(_ctx(), request)


def consistency_check_impl():
    return generation_api_service.consistency_check(_ctx(), request)


def generate_image_impl():
    return generation_api_service.generate_image(_ctx(), request)


def generate_video_impl():
    return generation_api_service.generate_video(_ctx(), request)


def generate_speech_impl():
    return generation_api_service.generate_speech(_ctx(), request)


def generate_storyboard_impl():
    return generation_api_service.generate_storyboard(_ctx(), request)


def storyboard_scene_image_impl():
    return generation_api_service.storyboard_scene_image(_ctx(), request)


def storyboard_video_impl():
    return generation_api_service.storyboard_video(_ctx(), request)


def get_config_impl():
    return payments_api_service.get_config(_ctx())


def create_purchase_impl():
    return payments_api_service.create_purchase(_ctx(), request)


def get_purchase_impl(flow_id):
    return payments_api_service.get_purchase(_ctx(), request, flow_id)


def charge_purchase_impl(flow_id):
    return payments_api_service.charge_purchase(_ctx(), request, flow_id)


def retry_purchase_impl(flow_id):
    return payments_api_service.retry_purchase(_ctx(), request, flow_id)


def cancel_purchase_impl(flow_id):
    return payments_api_service.cancel_purchase(_ctx(), request, flow_id)


def stripe_webhook_impl():
    return payments_api_service.stripe_webhook(_ctx(), request)


def purchase_history_impl():
    return payments_api_service.get_purchase_history(_ctx(), request)


def admin_list_users_impl():
    return admin_api_service.list_users(_ctx(), request)


def admin_set_role_impl(uid):
    return admin_api_service.set_role(_ctx(), request, uid)


def admin_set_commission_impl(uid):
    return admin_api_service.set_commission_rate(_ctx(), request, uid)


def admin_grant_credits_impl(uid):
    return admin_api_service.grant_credits(_ctx(), request, uid)


def admin_transactions_impl():
    return admin_api_service.list_transactions(_ctx(), request)


def admin_affiliates_impl():
    return admin_api_service.list_affiliates(_ctx(), request)


def admin_publish_announcement_impl():
    return admin_api_service.publish_announcement(_ctx(), request)


def admin_clear_announcement_impl():
    return admin_api_service.clear_announcement(_ctx(), request)


def admin_get_pix_key_impl():
    return admin_api_service.get_pix_key(_ctx(), request)


def admin_set_pix_key_impl():
    return admin_api_service.set_pix_key(_ctx(), request)


def affiliate_dashboard_impl():
    return affiliate_api_service.get_dashboard(_ctx(), request)


from prompt_studio.blueprints import (  # noqa: E402
    admin_bp,
    affiliate_bp,
    auth_bp,
    generation_bp,
    payments_bp,
    site_bp,
)

for _blueprint in (site_bp, auth_bp, generation_bp, payments_bp, admin_bp, affiliate_bp):
    app.register_blueprint(_blueprint)
