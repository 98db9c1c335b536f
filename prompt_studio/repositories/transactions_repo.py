"""Firestore accessors for transactions collection.

Documents are keyed by charge id so a second write for the same charge is
detectable before any credit grant.
"""

from .query_utils import apply_where


def doc_ref(db, charge_id):
    return db.collection('transactions').document(charge_id)


def get_doc(db, charge_id):
    return doc_ref(db, charge_id).get()


def create_doc(db, charge_id, data):
    return doc_ref(db, charge_id).create(data)


def delete_doc(db, charge_id):
    return doc_ref(db, charge_id).delete()


def stream_all(db):
    return db.collection('transactions').stream()


def list_by_user_recent(db, user_id, limit, firestore_module):
    query = apply_where(db.collection('transactions'), 'user_id', '==', user_id).order_by(
        'timestamp', direction=firestore_module.Query.DESCENDING
    ).limit(limit)
    return list(query.stream())
