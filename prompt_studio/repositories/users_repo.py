"""Firestore accessors for users collection."""

from .query_utils import apply_where


def doc_ref(db, uid):
    return db.collection('users').document(uid)


def get_doc(db, uid):
    return doc_ref(db, uid).get()


def set_doc(db, uid, data, merge=False):
    return doc_ref(db, uid).set(data, merge=merge)


def update_doc(db, uid, updates):
    return doc_ref(db, uid).update(updates)


def stream_all(db):
    return db.collection('users').stream()


def query_by_affiliate_id(db, affiliate_id, limit=1):
    return list(apply_where(db.collection('users'), 'affiliate_id', '==', affiliate_id).limit(limit).stream())
