"""Identity backends: account storage, sign-in and profile mutation.

Two implementations share one interface so the credit store and the payment
gateway never know which one they talk to:

* ``InMemoryIdentityBackend`` keeps a seeded demo user table in process memory.
* ``FirebaseIdentityBackend`` uses Firebase Auth for accounts and the Firestore
  ``users`` collection for profiles.
"""

import json
import threading
import time
import urllib.error
import urllib.request
import uuid
from dataclasses import replace

from werkzeug.security import check_password_hash, generate_password_hash

from prompt_studio.errors import (
    DuplicateAccountError,
    InvalidCredentialsError,
    PromptStudioError,
    UserNotFoundError,
)
from prompt_studio.logging_config import logger
from prompt_studio.models import UserProfile, UserRole
from prompt_studio.repositories import users_repo


DEMO_PASSWORD = 'password'
FIREBASE_SIGN_IN_URL = 'https://identitytoolkit.googleapis.com/v1/accounts:signInWithPassword?key={api_key}'


def normalize_email(email):
    return str(email or '').strip().lower()


def affiliate_id_for(uid):
    return f"aff-{uid}"


def apply_role_change(profile, role, default_commission_rate):
    """Return ``profile`` with ``role`` set, provisioning affiliate fields on promotion."""
    profile = replace(profile, role=role)
    if role is UserRole.AFFILIATE and not profile.affiliate_id:
        profile = replace(
            profile,
            affiliate_id=affiliate_id_for(profile.id),
            commission_rate=profile.commission_rate if profile.commission_rate is not None else default_commission_rate,
            commission_earned=profile.commission_earned or 0.0,
        )
    return profile


def build_demo_users():
    return [
        UserProfile(id='user-1', email='user@demo.com', role=UserRole.USER, credits=10),
        UserProfile(id='user-2', email='admin@demo.com', role=UserRole.ADMIN, credits=999),
        UserProfile(id='user-3', email='test@demo.com', role=UserRole.USER, credits=5, referred_by='aff-user-4'),
        UserProfile(
            id='user-4',
            email='affiliate@demo.com',
            role=UserRole.AFFILIATE,
            credits=20,
            affiliate_id='aff-user-4',
            commission_rate=0.15,
            commission_earned=6.75,
        ),
        UserProfile(id='user-5', email='influencer@demo.com', role=UserRole.INFLUENCER, credits=500),
    ]


class IdentityBackend:
    """Contract shared by identity implementations."""

    def login(self, email, password):
        raise NotImplementedError

    def register(self, email, password, referral_code=None):
        raise NotImplementedError

    def logout(self, uid):
        return None

    def get_profile(self, uid):
        raise NotImplementedError

    def update_credits(self, uid, delta):
        raise NotImplementedError

    def list_users(self):
        raise NotImplementedError

    def set_role(self, uid, role):
        raise NotImplementedError

    def set_commission_rate(self, uid, rate):
        raise NotImplementedError

    def find_affiliate(self, affiliate_id):
        raise NotImplementedError

    def add_commission(self, uid, amount):
        raise NotImplementedError


class InMemoryIdentityBackend(IdentityBackend):
    def __init__(self, users=None, *, welcome_credits=5, default_commission_rate=0.10, seed_password=DEMO_PASSWORD):
        self.welcome_credits = int(welcome_credits)
        self.default_commission_rate = float(default_commission_rate)
        self._lock = threading.RLock()
        self._users = {}
        self._password_hashes = {}
        seed = build_demo_users() if users is None else list(users)
        seed_hash = generate_password_hash(seed_password)
        for profile in seed:
            self._users[profile.id] = profile
            self._password_hashes[profile.id] = seed_hash

    def _find_by_email(self, email):
        email = normalize_email(email)
        for profile in self._users.values():
            if normalize_email(profile.email) == email:
                return profile
        return None

    def _require(self, uid):
        profile = self._users.get(uid)
        if profile is None:
            raise UserNotFoundError()
        return profile

    def login(self, email, password):
        with self._lock:
            profile = self._find_by_email(email)
            if profile is None:
                raise InvalidCredentialsError()
            if not check_password_hash(self._password_hashes.get(profile.id, ''), str(password or '')):
                raise InvalidCredentialsError()
            return profile

    def register(self, email, password, referral_code=None):
        with self._lock:
            if self._find_by_email(email) is not None:
                raise DuplicateAccountError()
            uid = f"user-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"
            profile = UserProfile(
                id=uid,
                email=str(email or '').strip(),
                role=UserRole.USER,
                credits=self.welcome_credits,
                referred_by=referral_code or None,
            )
            self._users[uid] = profile
            self._password_hashes[uid] = generate_password_hash(str(password or ''))
            return profile

    def get_profile(self, uid):
        with self._lock:
            return self._require(uid)

    def update_credits(self, uid, delta):
        with self._lock:
            profile = self._require(uid)
            updated = profile.with_credits(profile.credits + int(delta))
            self._users[uid] = updated
            return updated

    def list_users(self):
        with self._lock:
            return list(self._users.values())

    def set_role(self, uid, role):
        with self._lock:
            updated = apply_role_change(self._require(uid), role, self.default_commission_rate)
            self._users[uid] = updated
            return updated

    def set_commission_rate(self, uid, rate):
        with self._lock:
            profile = self._require(uid)
            if profile.role is not UserRole.AFFILIATE:
                return None
            updated = replace(profile, commission_rate=float(rate))
            self._users[uid] = updated
            return updated

    def find_affiliate(self, affiliate_id):
        if not affiliate_id:
            return None
        with self._lock:
            for profile in self._users.values():
                if profile.affiliate_id == affiliate_id:
                    return profile
            return None

    def add_commission(self, uid, amount):
        with self._lock:
            profile = self._require(uid)
            updated = replace(profile, commission_earned=(profile.commission_earned or 0.0) + float(amount))
            self._users[uid] = updated
            return updated


def _default_http_post(url, payload, timeout=10):
    data = json.dumps(payload).encode('utf-8')
    req = urllib.request.Request(url, data=data, headers={'Content-Type': 'application/json'}, method='POST')
    with urllib.request.urlopen(req, timeout=timeout) as resp:
        return json.loads(resp.read().decode('utf-8') or '{}')


class FirebaseIdentityBackend(IdentityBackend):
    """Firebase Auth accounts with profiles in the Firestore ``users`` collection."""

    def __init__(
        self,
        db,
        *,
        auth_module,
        firestore_module,
        web_api_key='',
        welcome_credits=5,
        default_commission_rate=0.10,
        http_post=None,
    ):
        self.db = db
        self.auth = auth_module
        self.firestore = firestore_module
        self.web_api_key = web_api_key
        self.welcome_credits = int(welcome_credits)
        self.default_commission_rate = float(default_commission_rate)
        self.http_post = http_post or _default_http_post

    def _build_default_user_data(self, uid, email, referral_code=None):
        profile = UserProfile(
            id=uid,
            email=email,
            role=UserRole.USER,
            credits=self.welcome_credits,
            referred_by=referral_code or None,
        )
        return profile.to_dict()

    def _get_or_create_profile(self, uid, email):
        snapshot = users_repo.get_doc(self.db, uid)
        if snapshot.exists:
            return UserProfile.from_dict(snapshot.to_dict(), uid=uid)
        data = self._build_default_user_data(uid, email)
        users_repo.set_doc(self.db, uid, data)
        logger.info(f"New user profile created: {uid} ({email})")
        return UserProfile.from_dict(data, uid=uid)

    def login(self, email, password):
        if not self.web_api_key:
            raise PromptStudioError('Password sign-in is not configured.')
        try:
            result = self.http_post(
                FIREBASE_SIGN_IN_URL.format(api_key=self.web_api_key),
                {'email': email, 'password': password, 'returnSecureToken': True},
            )
        except urllib.error.HTTPError as exc:
            logger.info(f"Firebase sign-in rejected for {normalize_email(email)}: {exc.code}")
            raise InvalidCredentialsError() from exc
        except urllib.error.URLError as exc:
            logger.error(f"Firebase sign-in unreachable: {exc}")
            raise PromptStudioError('Could not reach the sign-in service. Please try again.') from exc
        uid = str((result or {}).get('localId', '') or '')
        if not uid:
            raise InvalidCredentialsError()
        return self._get_or_create_profile(uid, str(result.get('email', email) or email))

    def register(self, email, password, referral_code=None):
        try:
            record = self.auth.create_user(email=email, password=password)
        except self.auth.EmailAlreadyExistsError as exc:
            raise DuplicateAccountError() from exc
        except ValueError as exc:
            raise PromptStudioError(str(exc)) from exc
        data = self._build_default_user_data(record.uid, email, referral_code)
        users_repo.set_doc(self.db, record.uid, data)
        logger.info(f"Registered user {record.uid} ({email}) referred_by={referral_code or '-'}")
        return UserProfile.from_dict(data, uid=record.uid)

    def logout(self, uid):
        if not uid:
            return None
        try:
            self.auth.revoke_refresh_tokens(uid)
        except Exception as e:
            logger.info(f"⚠️ Could not revoke refresh tokens for {uid}: {e}")
        return None

    def get_profile(self, uid):
        snapshot = users_repo.get_doc(self.db, uid)
        if not snapshot.exists:
            raise UserNotFoundError()
        return UserProfile.from_dict(snapshot.to_dict(), uid=uid)

    def update_credits(self, uid, delta):
        users_repo.update_doc(self.db, uid, {'credits': self.firestore.Increment(int(delta))})
        return self.get_profile(uid)

    def list_users(self):
        return [UserProfile.from_dict(doc.to_dict(), uid=doc.id) for doc in users_repo.stream_all(self.db)]

    def set_role(self, uid, role):
        updated = apply_role_change(self.get_profile(uid), role, self.default_commission_rate)
        users_repo.update_doc(self.db, uid, {
            'role': updated.role.value,
            'affiliate_id': updated.affiliate_id,
            'commission_rate': updated.commission_rate,
            'commission_earned': updated.commission_earned,
        })
        return updated

    def set_commission_rate(self, uid, rate):
        profile = self.get_profile(uid)
        if profile.role is not UserRole.AFFILIATE:
            return None
        users_repo.update_doc(self.db, uid, {'commission_rate': float(rate)})
        return replace(profile, commission_rate=float(rate))

    def find_affiliate(self, affiliate_id):
        if not affiliate_id:
            return None
        docs = users_repo.query_by_affiliate_id(self.db, affiliate_id)
        for doc in docs:
            return UserProfile.from_dict(doc.to_dict(), uid=doc.id)
        return None

    def add_commission(self, uid, amount):
        users_repo.update_doc(self.db, uid, {'commission_earned': self.firestore.Increment(float(amount))})
        return self.get_profile(uid)
