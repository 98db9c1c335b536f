"""Payment backends: mint charges, report their status, keep the ledger.

``StaticPixPaymentBackend`` builds PIX "copia e cola" codes from the merchant
key an admin saved in site settings and confirms them after a fixed delay
(demo mode). ``StripePaymentBackend`` creates real PaymentIntents for the
``pix`` and ``card`` payment methods.
"""

import threading
import time
import uuid
from urllib.parse import quote

from prompt_studio.errors import PaymentBackendError
from prompt_studio.logging_config import logger
from prompt_studio.models import (
    NOT_CONFIGURED_CHARGE_ID,
    CardResult,
    Charge,
    ChargeStatus,
    ChargeStatusReport,
)
from prompt_studio.services import pix_code


PIX_KEY_SETTING = 'pix_key'
QR_IMAGE_URL_TEMPLATE = 'https://api.qrserver.com/v1/create-qr-code/?size=200x200&data={data}'
DECLINED_TEST_TOKENS = {'tok_chargeDeclined', 'tok_chargeDeclinedInsufficientFunds'}


def amount_to_float(amount_display):
    return float(pix_code.normalize_amount(amount_display))


def amount_to_cents(amount_display):
    return int(round(amount_to_float(amount_display) * 100))


def build_not_configured_charge(user_id, credits, message):
    return Charge(
        id=NOT_CONFIGURED_CHARGE_ID,
        status=ChargeStatus.NOT_CONFIGURED,
        user_id=user_id,
        credits=int(credits),
        amount_paid=0.0,
        copy_paste_code=message,
    )


class PaymentBackend:
    """Contract shared by payment implementations."""

    ledger = None

    def is_configured(self):
        raise NotImplementedError

    def create_pix_charge(self, amount_display, credits, user_id):
        raise NotImplementedError

    def create_card_payment(self, amount_display, credits, user_id, card_token):
        raise NotImplementedError

    def get_status(self, charge_id):
        raise NotImplementedError

    def list_transactions(self):
        return self.ledger.list_all()

    def total_revenue(self):
        return self.ledger.total_revenue()


class StaticPixPaymentBackend(PaymentBackend):
    def __init__(
        self,
        settings,
        ledger,
        *,
        merchant_name='AI PROMPT GEN',
        merchant_city='SAO PAULO',
        confirm_after_seconds=10,
        time_module=time,
    ):
        self.settings = settings
        self.ledger = ledger
        self.merchant_name = merchant_name
        self.merchant_city = merchant_city
        self.confirm_after_seconds = confirm_after_seconds
        self.time = time_module
        self._lock = threading.Lock()
        self._pending = {}

    def is_configured(self):
        return bool(str(self.settings.get(PIX_KEY_SETTING, '') or '').strip())

    def create_pix_charge(self, amount_display, credits, user_id):
        pix_key = str(self.settings.get(PIX_KEY_SETTING, '') or '').strip()
        if not pix_key:
            return build_not_configured_charge(user_id, credits, 'PIX key is not configured in the admin panel.')

        charge_id = f"pix_{int(self.time.time() * 1000)}{uuid.uuid4().hex[:6]}"
        try:
            copy_paste_code = pix_code.build_br_code(
                pix_key,
                amount_display,
                self.merchant_name,
                merchant_city=self.merchant_city,
                reference=charge_id,
            )
        except ValueError as exc:
            raise PaymentBackendError(f"Could not build PIX code: {exc}") from exc

        charge = Charge(
            id=charge_id,
            status=ChargeStatus.PENDING,
            user_id=user_id,
            credits=int(credits),
            amount_paid=pix_code.amount_from_br_code(copy_paste_code),
            copy_paste_code=copy_paste_code,
            qr_image_url=QR_IMAGE_URL_TEMPLATE.format(data=quote(copy_paste_code, safe='')),
        )
        with self._lock:
            self._pending[charge_id] = {
                'charge': charge,
                'confirm_at': self.time.time() + self.confirm_after_seconds,
            }
        return charge

    def get_status(self, charge_id):
        with self._lock:
            entry = self._pending.get(charge_id)
            if entry is None:
                raise PaymentBackendError('Transaction not found.')
            charge = entry['charge']
            if charge.status is ChargeStatus.PENDING and self.time.time() >= entry['confirm_at']:
                charge.status = ChargeStatus.PAID
            if charge.status is ChargeStatus.PAID:
                return ChargeStatusReport(
                    ChargeStatus.PAID,
                    credits=charge.credits,
                    amount_paid=charge.amount_paid,
                    user_id=charge.user_id,
                )
            return ChargeStatusReport(ChargeStatus.PENDING)

    def mark_paid(self, charge_id):
        with self._lock:
            entry = self._pending.get(charge_id)
            if entry is None:
                raise PaymentBackendError('Transaction not found.')
            entry['confirm_at'] = 0

    def create_card_payment(self, amount_display, credits, user_id, card_token):
        token = str(card_token or '').strip()
        payment_id = f"card_{int(self.time.time() * 1000)}{uuid.uuid4().hex[:6]}"
        if not token or token in DECLINED_TEST_TOKENS:
            return CardResult(id=payment_id, status='rejected', message='Your card was declined.', user_id=user_id)
        return CardResult(
            id=payment_id,
            status='approved',
            message='Payment approved.',
            user_id=user_id,
            credits=int(credits),
            amount_paid=amount_to_float(amount_display),
        )


class StripePaymentBackend(PaymentBackend):
    def __init__(self, stripe_module, ledger, *, secret_key='', currency='brl'):
        self.stripe = stripe_module
        self.ledger = ledger
        self.secret_key = secret_key
        self.currency = currency

    def is_configured(self):
        return bool(self.secret_key)

    def _metadata(self, user_id, credits):
        return {'user_id': user_id, 'credits': str(int(credits))}

    def create_pix_charge(self, amount_display, credits, user_id):
        if not self.is_configured():
            return build_not_configured_charge(user_id, credits, 'Payments are not configured on this server.')
        try:
            intent = self.stripe.PaymentIntent.create(
                amount=amount_to_cents(amount_display),
                currency=self.currency,
                payment_method_types=['pix'],
                payment_method_data={'type': 'pix'},
                confirm=True,
                metadata=self._metadata(user_id, credits),
            )
        except self.stripe.StripeError as exc:
            logger.error(f"Stripe PIX charge error: {exc}")
            raise PaymentBackendError('Could not create PIX charge. Please try again.') from exc

        next_action = intent.get('next_action') or {}
        qr = next_action.get('pix_display_qr_code') or {}
        return Charge(
            id=intent['id'],
            status=ChargeStatus.PENDING,
            user_id=user_id,
            credits=int(credits),
            amount_paid=int(intent.get('amount', 0) or 0) / 100.0,
            copy_paste_code=str(qr.get('data', '') or ''),
            qr_image_url=str(qr.get('image_url_png', '') or ''),
        )

    def get_status(self, charge_id):
        try:
            intent = self.stripe.PaymentIntent.retrieve(charge_id)
        except self.stripe.StripeError as exc:
            logger.error(f"Stripe status error for {charge_id}: {exc}")
            raise PaymentBackendError('Could not check payment status.') from exc
        if str(intent.get('status', '') or '').lower() != 'succeeded':
            return ChargeStatusReport(ChargeStatus.PENDING)
        metadata = intent.get('metadata') or {}
        amount_cents = int(intent.get('amount_received', 0) or intent.get('amount', 0) or 0)
        return ChargeStatusReport(
            ChargeStatus.PAID,
            credits=int(metadata.get('credits', 0) or 0),
            amount_paid=amount_cents / 100.0,
            user_id=str(metadata.get('user_id', '') or ''),
        )

    def create_card_payment(self, amount_display, credits, user_id, card_token):
        if not self.is_configured():
            raise PaymentBackendError('Payments are not configured on this server.')
        try:
            intent = self.stripe.PaymentIntent.create(
                amount=amount_to_cents(amount_display),
                currency=self.currency,
                payment_method_types=['card'],
                payment_method_data={'type': 'card', 'card': {'token': card_token}},
                confirm=True,
                metadata=self._metadata(user_id, credits),
            )
        except self.stripe.CardError as exc:
            return CardResult(
                id=str(getattr(exc, 'request_id', '') or ''),
                status='rejected',
                message=exc.user_message or 'Your card was declined.',
                user_id=user_id,
            )
        except self.stripe.StripeError as exc:
            logger.error(f"Stripe card payment error: {exc}")
            raise PaymentBackendError('Could not process card payment. Please try again.') from exc

        if str(intent.get('status', '') or '').lower() != 'succeeded':
            return CardResult(id=intent['id'], status='rejected', message='Payment was not approved.', user_id=user_id)
        return CardResult(
            id=intent['id'],
            status='approved',
            message='Payment approved.',
            user_id=user_id,
            credits=int(credits),
            amount_paid=int(intent.get('amount_received', 0) or intent.get('amount', 0) or 0) / 100.0,
        )
