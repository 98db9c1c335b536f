"""Affiliate commission accrual for confirmed payments."""

import time

from prompt_studio.logging_config import logger
from prompt_studio.models import Transaction, UserRole


DEFAULT_COMMISSION_RATE = 0.10


def commission_rate_for(affiliate, default_rate=DEFAULT_COMMISSION_RATE):
    if affiliate.commission_rate is None:
        return float(default_rate)
    return float(affiliate.commission_rate)


def compute_commission(amount_paid, rate):
    return float(amount_paid) * float(rate)


def resolve_referrer(identity, payer):
    """Return the affiliate profile that referred ``payer``, or None."""
    if payer is None or not payer.referred_by:
        return None
    affiliate = identity.find_affiliate(payer.referred_by)
    if affiliate is None:
        logger.info(f"Referral code {payer.referred_by} on {payer.id} matches no affiliate.")
        return None
    if affiliate.role is not UserRole.AFFILIATE:
        return None
    return affiliate


def plan_commission(identity, payer, amount_paid, default_rate=DEFAULT_COMMISSION_RATE):
    """Return ``(affiliate, commission)`` owed for a payment, or ``(None, None)``."""
    affiliate = resolve_referrer(identity, payer)
    if affiliate is None:
        return None, None
    return affiliate, compute_commission(amount_paid, commission_rate_for(affiliate, default_rate))


def apply_commission(identity, affiliate, commission):
    """Add ``commission`` to the affiliate's running total."""
    if affiliate is None or commission is None:
        return None
    updated = identity.add_commission(affiliate.id, commission)
    logger.info(f"Commission {commission:.2f} accrued to {affiliate.affiliate_id}")
    return updated


def build_transaction(charge_id, payer_id, amount_paid, credits, *, payment_method='pix', affiliate=None,
                      commission=None, timestamp=None):
    return Transaction(
        id=charge_id,
        user_id=payer_id,
        amount_paid=float(amount_paid),
        credits_purchased=int(credits),
        timestamp=timestamp if timestamp is not None else time.time(),
        payment_method=payment_method,
        affiliate_id=affiliate.affiliate_id if affiliate is not None else None,
        commission_paid=commission if affiliate is not None else None,
    )


def affiliate_stats(identity, ledger, affiliate):
    """Referral count, referred revenue and commission figures for one affiliate."""
    referred_ids = {
        profile.id for profile in identity.list_users()
        if affiliate.affiliate_id and profile.referred_by == affiliate.affiliate_id
    }
    referred_revenue = sum(tx.amount_paid for tx in ledger.list_all() if tx.user_id in referred_ids)
    return {
        'user_id': affiliate.id,
        'email': affiliate.email,
        'affiliate_id': affiliate.affiliate_id,
        'referrals': len(referred_ids),
        'referred_revenue': round(referred_revenue, 2),
        'commission_rate': commission_rate_for(affiliate),
        'commission_earned': round(float(affiliate.commission_earned or 0.0), 2),
    }
