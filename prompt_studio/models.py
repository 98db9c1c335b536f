"""Domain records shared by the identity, payment and credit layers."""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional


NOT_CONFIGURED_CHARGE_ID = 'not-configured'


class UserRole(str, Enum):
    USER = 'user'
    ADMIN = 'admin'
    INFLUENCER = 'influencer'
    AFFILIATE = 'affiliate'

    @classmethod
    def parse(cls, raw_value, default=None):
        value = str(raw_value or '').strip().lower()
        for role in cls:
            if role.value == value:
                return role
        if default is not None:
            return default
        raise ValueError(f"Unknown role: {raw_value!r}")


class ChargeStatus(str, Enum):
    PENDING = 'pending'
    PAID = 'paid'
    NOT_CONFIGURED = 'not_configured'


class PurchaseState(str, Enum):
    SELECTING_PACKAGE = 'selecting_package'
    CREATING_CHARGE = 'creating_charge'
    AWAITING_CONFIRMATION = 'awaiting_confirmation'
    CONFIRMED = 'confirmed'
    FAILED = 'failed'
    NOT_CONFIGURED = 'not_configured'


TERMINAL_PURCHASE_STATES = {
    PurchaseState.CONFIRMED,
    PurchaseState.FAILED,
    PurchaseState.NOT_CONFIGURED,
}


@dataclass(frozen=True)
class UserProfile:
    id: str
    email: str
    role: UserRole = UserRole.USER
    credits: int = 0
    affiliate_id: Optional[str] = None
    commission_rate: Optional[float] = None
    commission_earned: float = 0.0
    referred_by: Optional[str] = None
    created_at: float = field(default_factory=time.time)

    def with_credits(self, credits):
        return replace(self, credits=int(credits))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'email': self.email,
            'role': self.role.value,
            'credits': int(self.credits),
            'affiliate_id': self.affiliate_id,
            'commission_rate': self.commission_rate,
            'commission_earned': float(self.commission_earned or 0.0),
            'referred_by': self.referred_by,
            'created_at': self.created_at,
        }

    @classmethod
    def from_dict(cls, data, uid=None):
        data = data or {}
        rate = data.get('commission_rate')
        return cls(
            id=str(uid or data.get('id', '') or ''),
            email=str(data.get('email', '') or ''),
            role=UserRole.parse(data.get('role'), default=UserRole.USER),
            credits=int(data.get('credits', 0) or 0),
            affiliate_id=data.get('affiliate_id') or None,
            commission_rate=float(rate) if rate is not None else None,
            commission_earned=float(data.get('commission_earned', 0.0) or 0.0),
            referred_by=data.get('referred_by') or None,
            created_at=data.get('created_at') or time.time(),
        )


@dataclass
class Charge:
    id: str
    status: ChargeStatus
    user_id: str
    credits: int
    amount_paid: float
    copy_paste_code: str = ''
    qr_code_base64: str = ''
    qr_image_url: str = ''
    created_at: float = field(default_factory=time.time)

    @property
    def is_not_configured(self):
        return self.status is ChargeStatus.NOT_CONFIGURED or self.id == NOT_CONFIGURED_CHARGE_ID

    def to_public_dict(self):
        return {
            'id': self.id,
            'status': self.status.value,
            'credits': self.credits,
            'amount_paid': self.amount_paid,
            'copy_paste_code': self.copy_paste_code,
            'qr_code_base64': self.qr_code_base64,
            'qr_image_url': self.qr_image_url,
        }


@dataclass(frozen=True)
class ChargeStatusReport:
    status: ChargeStatus
    credits: int = 0
    amount_paid: float = 0.0
    user_id: str = ''

    @property
    def is_paid(self):
        return self.status is ChargeStatus.PAID


@dataclass(frozen=True)
class CardResult:
    id: str
    status: str
    message: str
    user_id: str = ''
    credits: int = 0
    amount_paid: float = 0.0

    @property
    def approved(self):
        return self.status == 'approved'


@dataclass(frozen=True)
class Transaction:
    id: str
    user_id: str
    amount_paid: float
    credits_purchased: int
    timestamp: float
    payment_method: str = 'pix'
    affiliate_id: Optional[str] = None
    commission_paid: Optional[float] = None

    def to_dict(self):
        payload = {
            'id': self.id,
            'user_id': self.user_id,
            'amount_paid': self.amount_paid,
            'credits_purchased': self.credits_purchased,
            'timestamp': self.timestamp,
            'payment_method': self.payment_method,
        }
        if self.affiliate_id:
            payload['affiliate_id'] = self.affiliate_id
            payload['commission_paid'] = self.commission_paid
        return payload

    @classmethod
    def from_dict(cls, data, doc_id=None):
        data = data or {}
        commission = data.get('commission_paid')
        return cls(
            id=str(doc_id or data.get('id', '') or ''),
            user_id=str(data.get('user_id', '') or ''),
            amount_paid=float(data.get('amount_paid', 0.0) or 0.0),
            credits_purchased=int(data.get('credits_purchased', 0) or 0),
            timestamp=float(data.get('timestamp', 0.0) or 0.0),
            payment_method=str(data.get('payment_method', 'pix') or 'pix'),
            affiliate_id=data.get('affiliate_id') or None,
            commission_paid=float(commission) if commission is not None else None,
        )
