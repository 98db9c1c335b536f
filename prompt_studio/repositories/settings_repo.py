"""Firestore accessors for site settings (announcement banner, PIX key)."""


def doc_ref(db, key):
    return db.collection('site_settings').document(key)


def get_value(db, key):
    snapshot = doc_ref(db, key).get()
    if not snapshot.exists:
        return None
    return (snapshot.to_dict() or {}).get('value')


def set_value(db, key, value):
    return doc_ref(db, key).set({'value': value})


def delete_value(db, key):
    return doc_ref(db, key).delete()
