"""Purchase flows: charge creation, confirmation polling and reconciliation.

Each purchase attempt is a ``PurchaseFlow`` moving through ``PurchaseState``.
PIX charges are confirmed by a ``ChargePoller`` thread that consumes
``iter_status_events``; card payments confirm in a single request. Either way
``PaymentGateway.reconcile`` grants credits and commission, and the ledger
makes that happen once per charge id even when a webhook races the poller.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Any, Optional

from prompt_studio.errors import PromptStudioError
from prompt_studio.logging_config import log_event, logger
from prompt_studio.models import ChargeStatus, PurchaseState, TERMINAL_PURCHASE_STATES
from prompt_studio.services import commission_service


CREDIT_PACKAGES = {
    'pack_10': {'credits': 10, 'price': '10,00'},
    'pack_50': {'credits': 50, 'price': '45,00'},
    'pack_100': {'credits': 100, 'price': '80,00'},
}
DEFAULT_PACKAGE_ID = 'pack_50'
CUSTOM_CREDIT_PRICE = 0.25
CUSTOM_CREDITS_MIN = 10
CUSTOM_CREDITS_MAX = 1000
CREDIT_GRANT_TIMEOUT_SECONDS = 15

PAID_BUT_NOT_GRANTED_MESSAGES = {
    'unknown_user': 'Payment received, but your account could not be found. Please contact support.',
    'missing_charge_metadata': 'Payment received, but it could not be matched to your account. Please contact support.',
    'grant_failed': 'Payment received, but credits could not be added yet. They will be added automatically shortly.',
}

ALLOWED_TRANSITIONS = {
    PurchaseState.SELECTING_PACKAGE: {PurchaseState.CREATING_CHARGE},
    PurchaseState.CREATING_CHARGE: {
        PurchaseState.AWAITING_CONFIRMATION,
        PurchaseState.CONFIRMED,
        PurchaseState.FAILED,
        PurchaseState.NOT_CONFIGURED,
    },
    PurchaseState.AWAITING_CONFIRMATION: {PurchaseState.CONFIRMED, PurchaseState.FAILED},
    PurchaseState.FAILED: {PurchaseState.SELECTING_PACKAGE},
    PurchaseState.CONFIRMED: set(),
    PurchaseState.NOT_CONFIGURED: set(),
}


class InvalidTransitionError(PromptStudioError):
    status_code = 409


def format_brl(value):
    return f"{float(value):.2f}".replace('.', ',')


def clamp_custom_credits(raw_value):
    try:
        credits = int(raw_value)
    except (TypeError, ValueError):
        credits = CUSTOM_CREDITS_MIN
    return min(max(credits, CUSTOM_CREDITS_MIN), CUSTOM_CREDITS_MAX)


def resolve_purchase(package_id=None, custom_credits=None):
    """Return ``(credits, amount_display)`` for a package id or a custom amount."""
    if custom_credits is not None and not package_id:
        credits = clamp_custom_credits(custom_credits)
        return credits, format_brl(credits * CUSTOM_CREDIT_PRICE)
    package = CREDIT_PACKAGES.get(package_id or DEFAULT_PACKAGE_ID)
    if package is None:
        raise PromptStudioError('Invalid package selected.')
    return package['credits'], package['price']


def purchase_options():
    return {
        'packages': [
            {'id': package_id, 'credits': package['credits'], 'price': package['price']}
            for package_id, package in CREDIT_PACKAGES.items()
        ],
        'default_package': DEFAULT_PACKAGE_ID,
        'custom': {
            'credit_price': format_brl(CUSTOM_CREDIT_PRICE),
            'min_credits': CUSTOM_CREDITS_MIN,
            'max_credits': CUSTOM_CREDITS_MAX,
        },
    }


@dataclass(frozen=True)
class StatusEvent:
    kind: str
    report: Optional[Any] = None
    error: Optional[BaseException] = None
    tick: int = 0


def iter_status_events(backend, charge_id, interval, stop_event):
    """Yield one ``StatusEvent`` per status check until paid, failed or stopped.

    The first check runs after one ``interval``. The generator returns right
    after yielding a ``paid`` or ``error`` event.
    """
    tick = 0
    while not stop_event.wait(interval):
        tick += 1
        try:
            report = backend.get_status(charge_id)
        except Exception as exc:
            yield StatusEvent('error', error=exc, tick=tick)
            return
        if report.status is ChargeStatus.PAID:
            yield StatusEvent('paid', report=report, tick=tick)
            return
        yield StatusEvent('pending', report=report, tick=tick)


class ChargePoller:
    """Daemon thread that checks one charge until paid, failed or cancelled."""

    def __init__(self, backend, charge_id, *, interval=3.0, on_paid=None, on_error=None):
        self.backend = backend
        self.charge_id = charge_id
        self.interval = interval
        self.on_paid = on_paid
        self.on_error = on_error
        self.ticks = 0
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name=f"charge-poller-{charge_id}", daemon=True)

    def start(self):
        self._thread.start()
        return self

    def cancel(self):
        self._stop.set()

    @property
    def cancelled(self):
        return self._stop.is_set()

    def is_alive(self):
        return self._thread.is_alive()

    def join(self, timeout=None):
        self._thread.join(timeout)

    def _run(self):
        for event in iter_status_events(self.backend, self.charge_id, self.interval, self._stop):
            self.ticks = event.tick
            if self._stop.is_set():
                return
            try:
                if event.kind == 'paid' and self.on_paid is not None:
                    self.on_paid(event.report)
                elif event.kind == 'error' and self.on_error is not None:
                    self.on_error(event.error)
            except Exception as e:
                logger.error(f"Charge poller callback failed for {self.charge_id}: {e}")
                return


class PurchaseFlow:
    def __init__(self, user_id, *, flow_id=None):
        self.id = flow_id or uuid.uuid4().hex
        self.user_id = user_id
        self.state = PurchaseState.SELECTING_PACKAGE
        self.method = ''
        self.credits = 0
        self.amount_display = ''
        self.charge = None
        self.card_result = None
        self.message = ''
        self.closed = False
        self.created_at = time.time()
        self.updated_at = self.created_at
        self.poller = None
        self.close_timer = None
        self.lock = threading.RLock()

    @property
    def is_terminal(self):
        return self.state in TERMINAL_PURCHASE_STATES

    def transition(self, new_state, message=''):
        with self.lock:
            if new_state not in ALLOWED_TRANSITIONS.get(self.state, set()):
                raise InvalidTransitionError(f"Cannot move purchase from {self.state.value} to {new_state.value}.")
            self.state = new_state
            self.message = message
            self.updated_at = time.time()

    def to_public_dict(self):
        with self.lock:
            payload = {
                'id': self.id,
                'state': self.state.value,
                'method': self.method,
                'credits': self.credits,
                'amount': self.amount_display,
                'message': self.message,
                'closed': self.closed,
            }
            if self.charge is not None:
                payload['charge'] = self.charge.to_public_dict()
            if self.card_result is not None:
                payload['card'] = {
                    'id': self.card_result.id,
                    'status': self.card_result.status,
                    'message': self.card_result.message,
                }
            return payload


class PaymentGateway:
    def __init__(
        self,
        backend,
        identity,
        sessions,
        *,
        poll_interval=3.0,
        auto_close_seconds=3.0,
        default_commission_rate=commission_service.DEFAULT_COMMISSION_RATE,
    ):
        self.backend = backend
        self.identity = identity
        self.sessions = sessions
        self.ledger = backend.ledger
        self.poll_interval = poll_interval
        self.auto_close_seconds = auto_close_seconds
        self.default_commission_rate = default_commission_rate
        self._flows = {}
        self._flows_lock = threading.Lock()
        self._reconcile_lock = threading.Lock()

    # --- flow registry ---

    def start_purchase(self, user_id):
        flow = PurchaseFlow(user_id)
        with self._flows_lock:
            self._flows[flow.id] = flow
        return flow

    def get_flow(self, flow_id):
        with self._flows_lock:
            return self._flows.get(flow_id)

    def find_flow_by_charge(self, charge_id):
        with self._flows_lock:
            for flow in self._flows.values():
                if flow.charge is not None and flow.charge.id == charge_id:
                    return flow
        return None

    def sweep(self, max_age_seconds=3600, now=None):
        """Drop terminal flows idle for ``max_age_seconds``. Pending flows are kept."""
        now = time.time() if now is None else now
        removed = 0
        with self._flows_lock:
            for flow_id, flow in list(self._flows.items()):
                if flow.is_terminal and (now - flow.updated_at) >= max_age_seconds:
                    del self._flows[flow_id]
                    removed += 1
        return removed

    # --- PIX path ---

    def create_charge(self, flow, amount_display, credits):
        flow.transition(PurchaseState.CREATING_CHARGE)
        flow.method = 'pix'
        flow.credits = int(credits)
        flow.amount_display = amount_display
        try:
            charge = self.backend.create_pix_charge(amount_display, credits, flow.user_id)
        except PromptStudioError as e:
            flow.transition(PurchaseState.FAILED, e.message or 'Could not create PIX charge. Please try again.')
            return flow
        except Exception as e:
            logger.error(f"PIX charge creation failed for {flow.user_id}: {e}")
            flow.transition(PurchaseState.FAILED, 'Could not create PIX charge. Please try again.')
            return flow

        flow.charge = charge
        if charge.is_not_configured:
            flow.transition(PurchaseState.NOT_CONFIGURED, charge.copy_paste_code)
            log_event(logging.WARNING, 'payment_not_configured', flow_id=flow.id, user_id=flow.user_id)
            return flow

        flow.transition(PurchaseState.AWAITING_CONFIRMATION)
        self.poll_status(flow)
        return flow

    def poll_status(self, flow):
        poller = ChargePoller(
            self.backend,
            flow.charge.id,
            interval=self.poll_interval,
            on_paid=lambda report: self._on_paid(flow, report),
            on_error=lambda error: self._on_poll_error(flow, error),
        )
        flow.poller = poller
        return poller.start()

    def _on_paid(self, flow, report):
        charge = flow.charge
        ok, status = self._safe_reconcile(
            charge.id,
            report.user_id or flow.user_id,
            report.credits or charge.credits,
            report.amount_paid or charge.amount_paid,
            payment_method='pix',
        )
        with flow.lock:
            if flow.state is PurchaseState.AWAITING_CONFIRMATION:
                charge.status = ChargeStatus.PAID
                self._settle(flow, ok, status, 'Payment confirmed! Credits added to your account.')

    def _settle(self, flow, ok, status, confirmed_message):
        if ok:
            flow.transition(PurchaseState.CONFIRMED, confirmed_message)
            self._schedule_auto_close(flow)
        else:
            message = PAID_BUT_NOT_GRANTED_MESSAGES.get(status, PAID_BUT_NOT_GRANTED_MESSAGES['grant_failed'])
            flow.transition(PurchaseState.FAILED, message)
            log_event(logging.ERROR, 'payment_not_granted', flow_id=flow.id, user_id=flow.user_id, status=status)

    def _on_poll_error(self, flow, error):
        message = getattr(error, 'message', '') or 'Could not check payment status.'
        logger.error(f"Payment status check failed for {flow.charge.id}: {error}")
        with flow.lock:
            if flow.state is PurchaseState.AWAITING_CONFIRMATION:
                flow.transition(PurchaseState.FAILED, message)

    # --- card path ---

    def pay_with_card(self, flow, amount_display, credits, card_token):
        flow.transition(PurchaseState.CREATING_CHARGE)
        flow.method = 'card'
        flow.credits = int(credits)
        flow.amount_display = amount_display
        try:
            result = self.backend.create_card_payment(amount_display, credits, flow.user_id, card_token)
        except PromptStudioError as e:
            flow.transition(PurchaseState.FAILED, e.message or 'Could not process card payment.')
            return flow
        except Exception as e:
            logger.error(f"Card payment failed for {flow.user_id}: {e}")
            flow.transition(PurchaseState.FAILED, 'Could not process card payment. Please try again.')
            return flow

        flow.card_result = result
        if not result.approved:
            flow.transition(PurchaseState.FAILED, result.message or 'Your card was declined.')
            return flow

        ok, status = self._safe_reconcile(result.id, flow.user_id, result.credits, result.amount_paid, payment_method='card')
        self._settle(flow, ok, status, result.message or 'Payment approved.')
        return flow

    # --- lifecycle ---

    def _schedule_auto_close(self, flow):
        def _close():
            with flow.lock:
                flow.closed = True

        timer = threading.Timer(self.auto_close_seconds, _close)
        timer.daemon = True
        flow.close_timer = timer
        timer.start()

    def cancel(self, flow_id):
        """Stop polling for ``flow_id`` and forget it. Returns the flow or None."""
        with self._flows_lock:
            flow = self._flows.pop(flow_id, None)
        if flow is None:
            return None
        if flow.poller is not None:
            flow.poller.cancel()
        if flow.close_timer is not None:
            flow.close_timer.cancel()
        return flow

    def retry(self, flow):
        flow.transition(PurchaseState.SELECTING_PACKAGE)
        if flow.poller is not None:
            flow.poller.cancel()
        flow.charge = None
        flow.card_result = None
        flow.poller = None
        return flow

    # --- reconciliation ---

    def reconcile(self, charge_id, user_id, credits, amount_paid, *, payment_method='pix'):
        """Grant credits and commission for a paid charge.

        Returns ``(ok, status)`` where status is ``granted`` or
        ``already_processed`` on success, and ``missing_charge_metadata``,
        ``unknown_user`` or ``grant_failed`` otherwise. A failed credit grant
        releases the ledger claim so a later poll or webhook can try again.
        """
        if not charge_id or not user_id:
            return False, 'missing_charge_metadata'

        with self._reconcile_lock:
            if self.ledger.exists(charge_id):
                return True, 'already_processed'
            try:
                payer = self.identity.get_profile(user_id)
            except PromptStudioError:
                return False, 'unknown_user'

            affiliate, commission = commission_service.plan_commission(
                self.identity, payer, amount_paid, self.default_commission_rate
            )
            transaction = commission_service.build_transaction(
                charge_id,
                user_id,
                amount_paid,
                credits,
                payment_method=payment_method,
                affiliate=affiliate,
                commission=commission,
            )
            if not self.ledger.record(transaction):
                return True, 'already_processed'

        try:
            self._grant_credits(user_id, credits)
        except Exception as e:
            logger.error(f"Credit grant failed for charge {charge_id} ({user_id}): {e}")
            self.ledger.discard(charge_id)
            log_event(logging.ERROR, 'payment_grant_failed', charge_id=charge_id, user_id=user_id, credits=int(credits))
            return False, 'grant_failed'

        try:
            commission_service.apply_commission(self.identity, affiliate, commission)
        except Exception as e:
            # Credits are granted and the ledger row carries the commission, so the claim stays.
            logger.error(f"Commission update failed for charge {charge_id}: {e}")
            log_event(
                logging.ERROR,
                'commission_apply_failed',
                charge_id=charge_id,
                affiliate_id=affiliate.affiliate_id if affiliate is not None else None,
                commission=commission,
            )
        log_event(
            logging.INFO,
            'payment_reconciled',
            charge_id=charge_id,
            user_id=user_id,
            credits=int(credits),
            amount_paid=float(amount_paid),
            affiliate_id=affiliate.affiliate_id if affiliate is not None else None,
        )
        return True, 'granted'

    def _grant_credits(self, user_id, credits):
        store = self.sessions.peek(user_id) if self.sessions is not None else None
        if store is None:
            self.identity.update_credits(user_id, credits)
            return
        if not store.add_credits(credits).wait(timeout=CREDIT_GRANT_TIMEOUT_SECONDS):
            raise PromptStudioError('Credit write was reverted.')

    def _safe_reconcile(self, charge_id, user_id, credits, amount_paid, *, payment_method='pix'):
        try:
            return self.reconcile(charge_id, user_id, credits, amount_paid, payment_method=payment_method)
        except Exception as e:
            logger.error(f"Reconciliation failed for charge {charge_id}: {e}")
            return False, 'grant_failed'

    def confirm_charge(self, charge_id):
        """Check ``charge_id`` with the backend and reconcile it when paid (webhook path)."""
        report = self.backend.get_status(charge_id)
        if not report.is_paid:
            return False, 'pending'
        flow = self.find_flow_by_charge(charge_id)
        user_id = report.user_id or (flow.user_id if flow is not None else '')
        ok, status = self._safe_reconcile(charge_id, user_id, report.credits, report.amount_paid, payment_method='pix')
        if flow is not None:
            if flow.poller is not None:
                flow.poller.cancel()
            with flow.lock:
                if flow.state is PurchaseState.AWAITING_CONFIRMATION:
                    flow.charge.status = ChargeStatus.PAID
                    self._settle(flow, ok, status, 'Payment confirmed! Credits added to your account.')
        return ok, status
