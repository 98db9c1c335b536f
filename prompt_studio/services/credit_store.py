"""Per-user credit snapshot with optimistic spend/grant.

A ``CreditStore`` owns the live credit value of one signed-in user. Mutations
apply to the in-memory snapshot synchronously and are written to the identity
backend on a worker thread. When that write fails the snapshot is reset to the
value captured when the mutation started.

No lock spans the local update and the remote write: two spends issued before
the first write lands each capture their own "last known good" value, so a
revert can discard a concurrent mutation. Callers that need strict accounting
should call ``refresh()`` after a failure.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Optional

from prompt_studio.logging_config import log_event, logger


INSUFFICIENT_CREDITS_MESSAGE = "You don't have enough credits for this action."

_WRITE_EXECUTOR = ThreadPoolExecutor(max_workers=4, thread_name_prefix='credit-writer')


@dataclass(frozen=True)
class CreditMutation:
    ok: bool
    value: int
    previous: int
    message: str = ''
    reason: str = ''
    future: Optional[Any] = None

    def wait(self, timeout=None):
        """Block until the remote write settles; returns True when it succeeded."""
        if self.future is None:
            return self.ok
        return bool(self.future.result(timeout=timeout))


class CreditStore:
    def __init__(self, identity, profile, *, executor=None):
        self.identity = identity
        self._profile = profile
        self._lock = threading.Lock()
        self._executor = executor or _WRITE_EXECUTOR

    @property
    def uid(self):
        return self._profile.id

    @property
    def profile(self):
        with self._lock:
            return self._profile

    @property
    def credits(self):
        with self._lock:
            return self._profile.credits

    def has_credits(self, amount=1):
        return self.credits >= int(amount)

    def spend_credit(self, amount=1):
        amount = int(amount)
        if amount < 0:
            raise ValueError('amount must be non-negative')
        with self._lock:
            before = self._profile.credits
            if before < amount:
                return CreditMutation(
                    ok=False,
                    value=before,
                    previous=before,
                    message=INSUFFICIENT_CREDITS_MESSAGE,
                    reason='insufficient_credits',
                )
            self._profile = self._profile.with_credits(before - amount)
        return self._commit(-amount, before)

    def add_credits(self, amount):
        amount = int(amount)
        if amount < 0:
            raise ValueError('amount must be non-negative')
        with self._lock:
            before = self._profile.credits
            self._profile = self._profile.with_credits(before + amount)
        return self._commit(amount, before)

    def _commit(self, delta, last_known_good):
        future = self._executor.submit(self._write_remote, delta, last_known_good)
        return CreditMutation(ok=True, value=last_known_good + delta, previous=last_known_good, future=future)

    def _write_remote(self, delta, last_known_good):
        if delta == 0:
            return True
        try:
            self.identity.update_credits(self.uid, delta)
            return True
        except Exception as e:
            logger.error(f"Credit write failed for {self.uid} (delta={delta}): {e}")
            with self._lock:
                self._profile = self._profile.with_credits(last_known_good)
            log_event(logging.WARNING, 'credit_write_reverted', uid=self.uid, delta=delta, value=last_known_good)
            return False

    def refresh(self):
        profile = self.identity.get_profile(self.uid)
        with self._lock:
            self._profile = profile
        return profile

    def replace_profile(self, profile):
        with self._lock:
            self._profile = profile


class SessionRegistry:
    """One ``CreditStore`` per signed-in user id."""

    def __init__(self, identity, *, executor=None):
        self.identity = identity
        self._executor = executor
        self._lock = threading.Lock()
        self._stores = {}

    def open(self, profile):
        with self._lock:
            store = self._stores.get(profile.id)
            if store is None:
                store = CreditStore(self.identity, profile, executor=self._executor)
                self._stores[profile.id] = store
            else:
                store.replace_profile(profile)
            return store

    def get(self, uid):
        if not uid:
            return None
        with self._lock:
            store = self._stores.get(uid)
        if store is not None:
            return store
        try:
            profile = self.identity.get_profile(uid)
        except Exception as e:
            logger.info(f"Session profile lookup failed for {uid}: {e}")
            return None
        return self.open(profile)

    def peek(self, uid):
        with self._lock:
            return self._stores.get(uid)

    def close(self, uid):
        with self._lock:
            return self._stores.pop(uid, None)
