"""Key/value site settings (announcement banner, merchant PIX key)."""

import threading

from prompt_studio.repositories import settings_repo


class InMemorySettingsStore:
    def __init__(self, initial=None):
        self._lock = threading.Lock()
        self._values = dict(initial or {})

    def get(self, key, default=None):
        with self._lock:
            return self._values.get(key, default)

    def set(self, key, value):
        with self._lock:
            self._values[key] = value

    def delete(self, key):
        with self._lock:
            self._values.pop(key, None)


class FirestoreSettingsStore:
    def __init__(self, db):
        self.db = db

    def get(self, key, default=None):
        value = settings_repo.get_value(self.db, key)
        return default if value is None else value

    def set(self, key, value):
        settings_repo.set_value(self.db, key, value)

    def delete(self, key):
        settings_repo.delete_value(self.db, key)
