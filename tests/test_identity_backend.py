import urllib.error
from types import SimpleNamespace

import pytest

from prompt_studio.backends.identity import FirebaseIdentityBackend, InMemoryIdentityBackend
from prompt_studio.errors import DuplicateAccountError, InvalidCredentialsError, UserNotFoundError
from prompt_studio.models import UserRole


def test_demo_users_sign_in_with_shared_password():
    identity = InMemoryIdentityBackend()

    profile = identity.login("Admin@Demo.com", "password")

    assert profile.id == "user-2"
    assert profile.role is UserRole.ADMIN
    with pytest.raises(InvalidCredentialsError):
        identity.login("admin@demo.com", "wrong")
    with pytest.raises(InvalidCredentialsError):
        identity.login("ghost@demo.com", "password")


def test_register_grants_welcome_credits_and_rejects_duplicates():
    identity = InMemoryIdentityBackend(welcome_credits=7)

    profile = identity.register("new@example.com", "secret1", referral_code="aff-user-4")

    assert profile.credits == 7
    assert profile.role is UserRole.USER
    assert profile.referred_by == "aff-user-4"
    assert identity.login("new@example.com", "secret1").id == profile.id
    with pytest.raises(DuplicateAccountError):
        identity.register("NEW@example.com", "secret2")


def test_missing_user_raises():
    identity = InMemoryIdentityBackend()

    with pytest.raises(UserNotFoundError):
        identity.get_profile("ghost")
    with pytest.raises(UserNotFoundError):
        identity.update_credits("ghost", 5)


def test_demotion_keeps_affiliate_fields_and_promotion_restores_them():
    identity = InMemoryIdentityBackend()

    demoted = identity.set_role("user-4", UserRole.USER)
    assert demoted.affiliate_id == "aff-user-4"
    assert identity.set_commission_rate("user-4", 0.3) is None

    promoted = identity.set_role("user-4", UserRole.AFFILIATE)
    assert promoted.commission_rate == pytest.approx(0.15)
    assert promoted.commission_earned == pytest.approx(6.75)


class _Increment:
    def __init__(self, value):
        self.value = value


class _DocSnapshot:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self.exists = data is not None
        self._data = data

    def to_dict(self):
        return dict(self._data or {})


class _DocRef:
    def __init__(self, store, doc_id):
        self.store = store
        self.doc_id = doc_id

    def get(self):
        return _DocSnapshot(self.doc_id, self.store.get(self.doc_id))

    def set(self, data, merge=False):
        base = dict(self.store.get(self.doc_id) or {}) if merge else {}
        base.update(data)
        self.store[self.doc_id] = base

    def update(self, updates):
        data = self.store[self.doc_id]
        for key, value in updates.items():
            if isinstance(value, _Increment):
                data[key] = (data.get(key) or 0) + value.value
            else:
                data[key] = value


class _Query:
    def __init__(self, store, field=None, value=None):
        self.store = store
        self.field = field
        self.value = value

    def where(self, field, op, value):
        assert op == "=="
        return _Query(self.store, field, value)

    def limit(self, _count):
        return self

    def stream(self):
        return [
            _DocSnapshot(doc_id, data)
            for doc_id, data in self.store.items()
            if self.field is None or data.get(self.field) == self.value
        ]


class _Collection(_Query):
    def document(self, doc_id):
        return _DocRef(self.store, doc_id)


class _FakeDB:
    def __init__(self):
        self.users = {}

    def collection(self, name):
        assert name == "users"
        return _Collection(self.users)


class _FakeAuth:
    class EmailAlreadyExistsError(Exception):
        pass

    def __init__(self):
        self.emails = set()
        self.revoked = []

    def create_user(self, email, password):
        if email in self.emails:
            raise self.EmailAlreadyExistsError(email)
        self.emails.add(email)
        return SimpleNamespace(uid=f"fb-{len(self.emails)}")

    def revoke_refresh_tokens(self, uid):
        self.revoked.append(uid)


@pytest.fixture()
def firebase():
    db = _FakeDB()
    auth = _FakeAuth()
    responses = {}

    def http_post(url, payload, timeout=10):
        result = responses.get(payload["email"])
        if isinstance(result, Exception):
            raise result
        return result

    identity = FirebaseIdentityBackend(
        db,
        auth_module=auth,
        firestore_module=SimpleNamespace(Increment=_Increment),
        web_api_key="web-key",
        welcome_credits=5,
        http_post=http_post,
    )
    return identity, db, auth, responses


def test_firebase_register_creates_profile_document(firebase):
    identity, db, _auth, _responses = firebase

    profile = identity.register("a@example.com", "secret1", referral_code="aff-x")

    assert profile.id == "fb-1"
    assert db.users["fb-1"]["credits"] == 5
    assert db.users["fb-1"]["referred_by"] == "aff-x"
    with pytest.raises(DuplicateAccountError):
        identity.register("a@example.com", "secret1")


def test_firebase_login_creates_missing_profile(firebase):
    identity, db, _auth, responses = firebase
    responses["b@example.com"] = {"localId": "fb-legacy", "email": "b@example.com"}
    responses["bad@example.com"] = urllib.error.HTTPError("url", 400, "INVALID_PASSWORD", None, None)

    profile = identity.login("b@example.com", "secret1")

    assert profile.id == "fb-legacy"
    assert db.users["fb-legacy"]["role"] == "user"
    with pytest.raises(InvalidCredentialsError):
        identity.login("bad@example.com", "nope")


def test_firebase_credit_and_commission_increments(firebase):
    identity, _db, auth, _responses = firebase
    profile = identity.register("c@example.com", "secret1")

    assert identity.update_credits(profile.id, 100).credits == 105
    assert identity.update_credits(profile.id, -1).credits == 104

    affiliate = identity.set_role(profile.id, UserRole.AFFILIATE)
    assert affiliate.affiliate_id == f"aff-{profile.id}"
    assert identity.find_affiliate(affiliate.affiliate_id).id == profile.id
    assert identity.add_commission(profile.id, 4.5).commission_earned == pytest.approx(4.5)

    identity.logout(profile.id)
    assert auth.revoked == [profile.id]
