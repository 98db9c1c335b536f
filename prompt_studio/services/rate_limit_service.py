"""Fixed-window rate limits: Firestore counters first, process memory as fallback."""

import hashlib
import re
import threading
import time

from prompt_studio.logging_config import logger
from prompt_studio.repositories import rate_limit_repo


COUNTER_COLLECTION = 'rate_limit_counters'


def window_counter_id(key, window_seconds, window_start):
    raw = f"{key}|{window_seconds}|{int(window_start)}".encode('utf-8')
    return hashlib.sha256(raw).hexdigest()


def normalize_key_part(value, fallback='anon', max_len=120):
    raw = str(value or '').strip().lower()
    if not raw:
        return fallback
    safe = re.sub(r'[^a-z0-9_.:@-]+', '_', raw)
    return safe[:max_len] if safe else fallback


class RateLimiter:
    def __init__(self, *, db=None, firestore_module=None, counter_collection=COUNTER_COLLECTION, time_module=time):
        self.db = db
        self.firestore = firestore_module
        self.counter_collection = counter_collection
        self.time = time_module
        self._events = {}
        self._lock = threading.Lock()

    def _check_firestore(self, key, limit, window_seconds, now_ts):
        if self.db is None or self.firestore is None:
            return None
        try:
            window_start = int(now_ts // window_seconds) * int(window_seconds)
            retry_after = max(1, int((window_start + window_seconds) - now_ts))
            counter_ref = rate_limit_repo.counter_doc_ref(
                self.db, self.counter_collection, window_counter_id(key, window_seconds, window_start)
            )
            transaction = self.db.transaction()

            @self.firestore.transactional
            def _txn(txn):
                snapshot = counter_ref.get(transaction=txn)
                count = 0
                if snapshot.exists:
                    count = int((snapshot.to_dict() or {}).get('count', 0) or 0)
                if count >= limit:
                    return False, retry_after
                txn.set(counter_ref, {
                    'key': key,
                    'count': count + 1,
                    'window_start': window_start,
                    'window_seconds': int(window_seconds),
                    'updated_at': now_ts,
                    'expires_at': window_start + (window_seconds * 3),
                }, merge=True)
                return True, 0

            return _txn(transaction)
        except Exception as e:
            logger.info(f"Rate limit counter unavailable, using memory fallback: {e}")
            return None

    def check(self, key, limit, window_seconds):
        """Return ``(allowed, retry_after_seconds)`` and count this request when allowed."""
        now_ts = self.time.time()
        result = self._check_firestore(key, limit, window_seconds, now_ts)
        if result is not None:
            return result

        with self._lock:
            cutoff = now_ts - window_seconds
            kept = [ts for ts in self._events.get(key, []) if ts >= cutoff]
            if len(kept) >= limit:
                self._events[key] = kept
                return False, max(1, int((kept[0] + window_seconds) - now_ts))
            kept.append(now_ts)
            self._events[key] = kept
        return True, 0

    def reset(self):
        with self._lock:
            self._events.clear()
