import pytest

from prompt_studio.backends.identity import InMemoryIdentityBackend
from prompt_studio.backends.ledger import InMemoryLedger, build_demo_transactions
from prompt_studio.backends.settings import InMemorySettingsStore
from prompt_studio.services import announcement_service, commission_service, referral_service
from prompt_studio.services.rate_limit_service import RateLimiter, normalize_key_part


class _Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def time(self):
        return self.now


def test_referral_capture_is_consumed_once():
    session = {}

    assert referral_service.capture_referral(session, {"ref": " aff-42 "}) == "aff-42"
    assert referral_service.peek_referral(session) == "aff-42"
    assert referral_service.consume_referral(session) == "aff-42"
    assert referral_service.consume_referral(session) is None


@pytest.mark.parametrize("raw", ["", "has space", "<script>", "x" * 65, None])
def test_invalid_referral_codes_are_ignored(raw):
    session = {"referral_code": "kept"}

    assert referral_service.capture_referral(session, {"ref": raw}) == ""
    assert session["referral_code"] == "kept"


def test_announcement_lifecycle():
    settings = InMemorySettingsStore()
    assert announcement_service.visible_announcement(settings, "") is None

    first = announcement_service.publish_announcement(settings, "  Maintenance tonight ", now=1.5)
    assert first == {"id": "1500", "message": "Maintenance tonight"}
    assert announcement_service.visible_announcement(settings, "1500") is None
    assert announcement_service.visible_announcement(settings, "999") == first

    second = announcement_service.publish_announcement(settings, "New voices available", now=2.0)
    assert announcement_service.visible_announcement(settings, "1500") == second

    announcement_service.clear_announcement(settings)
    assert announcement_service.get_announcement(settings) is None


def test_announcement_requires_message():
    with pytest.raises(ValueError):
        announcement_service.publish_announcement(InMemorySettingsStore(), "   ")


def test_commission_is_amount_times_rate():
    assert commission_service.compute_commission(45.0, 0.15) == pytest.approx(6.75)
    assert commission_service.compute_commission(33.33, 0.10) == pytest.approx(3.333)


def test_plan_commission_requires_affiliate_referrer():
    identity = InMemoryIdentityBackend()

    affiliate, commission = commission_service.plan_commission(identity, identity.get_profile("user-3"), 100.0)
    assert affiliate.id == "user-4"
    assert commission == pytest.approx(15.0)

    assert commission_service.plan_commission(identity, identity.get_profile("user-1"), 100.0) == (None, None)
    orphan = identity.register("orphan@example.com", "secret1", referral_code="aff-nobody")
    assert commission_service.plan_commission(identity, orphan, 100.0) == (None, None)


def test_affiliate_stats():
    identity = InMemoryIdentityBackend()
    stats = commission_service.affiliate_stats(identity, InMemoryLedger(build_demo_transactions()), identity.get_profile("user-4"))

    assert stats["referrals"] == 1
    assert stats["referred_revenue"] == 45.0
    assert stats["commission_earned"] == 6.75


def test_rate_limiter_memory_window():
    clock = _Clock()
    limiter = RateLimiter(time_module=clock)

    assert limiter.check("login:1.2.3.4", 2, 60) == (True, 0)
    assert limiter.check("login:1.2.3.4", 2, 60) == (True, 0)
    allowed, retry_after = limiter.check("login:1.2.3.4", 2, 60)
    assert allowed is False
    assert retry_after == 60
    assert limiter.check("login:5.6.7.8", 2, 60) == (True, 0)

    clock.now += 61
    assert limiter.check("login:1.2.3.4", 2, 60) == (True, 0)


def test_normalize_key_part():
    assert normalize_key_part(" User@Example.com ") == "user@example.com"
    assert normalize_key_part("a b/c") == "a_b_c"
    assert normalize_key_part("", fallback="anon_ip") == "anon_ip"
