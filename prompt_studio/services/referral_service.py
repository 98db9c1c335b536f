"""Referral code capture (``?ref=``) and single-use consumption at sign-up."""

import re


SESSION_REFERRAL_KEY = 'referral_code'
MAX_REFERRAL_CODE_LENGTH = 64
_REFERRAL_CODE_RE = re.compile(r'^[A-Za-z0-9_.:-]+$')


def normalize_referral_code(raw_value):
    code = str(raw_value or '').strip()
    if not code or len(code) > MAX_REFERRAL_CODE_LENGTH:
        return ''
    if not _REFERRAL_CODE_RE.match(code):
        return ''
    return code


def capture_referral(session, args):
    """Store ``args['ref']`` in the session when present; returns the stored code."""
    code = normalize_referral_code(args.get('ref'))
    if code:
        session[SESSION_REFERRAL_KEY] = code
    return code


def peek_referral(session):
    return session.get(SESSION_REFERRAL_KEY) or None


def consume_referral(session):
    """Remove and return the captured code, so it applies to one registration only."""
    return session.pop(SESSION_REFERRAL_KEY, None) or None
