import pytest

from prompt_studio.backends.ledger import InMemoryLedger
from prompt_studio.backends.payments import StaticPixPaymentBackend, StripePaymentBackend, amount_to_cents
from prompt_studio.backends.settings import InMemorySettingsStore
from prompt_studio.errors import PaymentBackendError
from prompt_studio.models import ChargeStatus
from prompt_studio.services import pix_code


class _Clock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def time(self):
        return self.now


def test_crc16_matches_reference_vector():
    assert pix_code.crc16_ccitt("123456789") == "29B1"


def test_br_code_is_well_formed():
    payload = pix_code.build_br_code("payments@example.com", "45,00", "AI PROMPT GEN", reference="pix_123-abc")

    assert payload.startswith("000201")
    assert payload[-8:-4] == "6304"
    assert pix_code.crc16_ccitt(payload[:-4]) == payload[-4:]
    fields = pix_code.parse_fields(payload)
    assert fields["53"] == "986"
    assert fields["54"] == "45.00"
    assert fields["58"] == "BR"
    assert fields["62"] == "0509pix123abc"
    assert pix_code.amount_from_br_code(payload) == 45.0


@pytest.mark.parametrize("raw,expected", [("45,00", "45.00"), ("1.234,50", "1234.50"), ("R$ 10", "10.00"), (80, "80.00")])
def test_normalize_amount(raw, expected):
    assert pix_code.normalize_amount(raw) == expected
    with pytest.raises(ValueError):
        pix_code.normalize_amount("0,00")


def test_amount_to_cents():
    assert amount_to_cents("45,00") == 4500
    assert amount_to_cents("2,50") == 250


def test_static_pix_without_key_returns_not_configured_sentinel():
    backend = StaticPixPaymentBackend(InMemorySettingsStore(), InMemoryLedger())

    charge = backend.create_pix_charge("10,00", 10, "user-1")

    assert backend.is_configured() is False
    assert charge.is_not_configured
    assert charge.status is ChargeStatus.NOT_CONFIGURED


def test_static_pix_confirms_after_delay():
    clock = _Clock()
    backend = StaticPixPaymentBackend(
        InMemorySettingsStore({"pix_key": "+5511999999999"}),
        InMemoryLedger(),
        confirm_after_seconds=10,
        time_module=clock,
    )

    charge = backend.create_pix_charge("10,00", 10, "user-1")
    assert charge.qr_image_url.startswith("https://api.qrserver.com/")
    assert backend.get_status(charge.id).status is ChargeStatus.PENDING

    clock.now += 10
    report = backend.get_status(charge.id)
    assert report.is_paid
    assert (report.user_id, report.credits, report.amount_paid) == ("user-1", 10, 10.0)

    with pytest.raises(PaymentBackendError):
        backend.get_status("pix_unknown")


class _FakeStripe:
    class StripeError(Exception):
        pass

    class CardError(StripeError):
        def __init__(self, message, user_message=None):
            super().__init__(message)
            self.user_message = user_message
            self.request_id = "req_declined"

    class PaymentIntent:
        created = []
        intents = {}
        fail_with = None

        @classmethod
        def create(cls, **kwargs):
            if cls.fail_with is not None:
                raise cls.fail_with
            cls.created.append(kwargs)
            intent = {
                "id": f"pi_{len(cls.created)}",
                "amount": kwargs["amount"],
                "status": "succeeded" if "card" in kwargs["payment_method_types"] else "requires_action",
                "metadata": kwargs["metadata"],
                "next_action": {"pix_display_qr_code": {"data": "000201PIXDATA", "image_url_png": "https://qr.example/png"}},
            }
            cls.intents[intent["id"]] = intent
            return intent

        @classmethod
        def retrieve(cls, intent_id):
            return cls.intents[intent_id]


@pytest.fixture()
def fake_stripe():
    _FakeStripe.PaymentIntent.created = []
    _FakeStripe.PaymentIntent.intents = {}
    _FakeStripe.PaymentIntent.fail_with = None
    return _FakeStripe


def test_stripe_pix_charge_and_status(fake_stripe):
    backend = StripePaymentBackend(fake_stripe, InMemoryLedger(), secret_key="sk_test_123")

    charge = backend.create_pix_charge("45,00", 50, "user-3")

    assert charge.id == "pi_1"
    assert charge.amount_paid == 45.0
    assert charge.copy_paste_code == "000201PIXDATA"
    assert fake_stripe.PaymentIntent.created[0]["metadata"] == {"user_id": "user-3", "credits": "50"}
    assert backend.get_status(charge.id).status is ChargeStatus.PENDING

    fake_stripe.PaymentIntent.intents["pi_1"]["status"] = "succeeded"
    report = backend.get_status(charge.id)
    assert report.is_paid
    assert (report.user_id, report.credits, report.amount_paid) == ("user-3", 50, 45.0)


def test_stripe_without_key_is_not_configured(fake_stripe):
    backend = StripePaymentBackend(fake_stripe, InMemoryLedger(), secret_key="")

    assert backend.create_pix_charge("10,00", 10, "user-1").is_not_configured
    assert fake_stripe.PaymentIntent.created == []


def test_stripe_card_declined_and_api_errors(fake_stripe):
    backend = StripePaymentBackend(fake_stripe, InMemoryLedger(), secret_key="sk_test_123")

    approved = backend.create_card_payment("10,00", 10, "user-1", "tok_visa")
    assert approved.approved
    assert approved.amount_paid == 10.0

    fake_stripe.PaymentIntent.fail_with = fake_stripe.CardError("declined", user_message="Your card has insufficient funds.")
    declined = backend.create_card_payment("10,00", 10, "user-1", "tok_x")
    assert declined.approved is False
    assert declined.message == "Your card has insufficient funds."

    fake_stripe.PaymentIntent.fail_with = fake_stripe.StripeError("boom")
    with pytest.raises(PaymentBackendError):
        backend.create_pix_charge("10,00", 10, "user-1")
