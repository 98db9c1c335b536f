"""Transaction ledger: one record per paid charge."""

import threading

from prompt_studio.models import Transaction
from prompt_studio.repositories import transactions_repo


class InMemoryLedger:
    def __init__(self, transactions=None):
        self._lock = threading.Lock()
        self._records = {}
        for tx in transactions or []:
            self._records[tx.id] = tx

    def exists(self, charge_id):
        with self._lock:
            return charge_id in self._records

    def record(self, transaction):
        """Store ``transaction``; returns False when the charge id was already recorded."""
        with self._lock:
            if transaction.id in self._records:
                return False
            self._records[transaction.id] = transaction
            return True

    def discard(self, charge_id):
        with self._lock:
            self._records.pop(charge_id, None)

    def list_all(self):
        with self._lock:
            return sorted(self._records.values(), key=lambda tx: tx.timestamp, reverse=True)

    def list_for_user(self, user_id, limit=50):
        return [tx for tx in self.list_all() if tx.user_id == user_id][:limit]

    def total_revenue(self):
        return round(sum(tx.amount_paid for tx in self.list_all()), 2)


class FirestoreLedger:
    def __init__(self, db, *, firestore_module, already_exists_error=Exception):
        self.db = db
        self.firestore = firestore_module
        self.already_exists_error = already_exists_error

    def exists(self, charge_id):
        if not charge_id:
            return False
        return bool(transactions_repo.get_doc(self.db, charge_id).exists)

    def record(self, transaction):
        try:
            transactions_repo.create_doc(self.db, transaction.id, transaction.to_dict())
        except self.already_exists_error:
            return False
        return True

    def discard(self, charge_id):
        transactions_repo.delete_doc(self.db, charge_id)

    def list_all(self):
        records = [Transaction.from_dict(doc.to_dict(), doc_id=doc.id) for doc in transactions_repo.stream_all(self.db)]
        return sorted(records, key=lambda tx: tx.timestamp, reverse=True)

    def list_for_user(self, user_id, limit=50):
        docs = transactions_repo.list_by_user_recent(self.db, user_id, limit, self.firestore)
        return [Transaction.from_dict(doc.to_dict(), doc_id=doc.id) for doc in docs]

    def total_revenue(self):
        return round(sum(tx.amount_paid for tx in self.list_all()), 2)


def build_demo_transactions():
    return [
        Transaction(
            id='tx_12345',
            user_id='user-3',
            amount_paid=45.00,
            credits_purchased=50,
            timestamp=0.0,
            affiliate_id='aff-user-4',
            commission_paid=6.75,
        ),
    ]
