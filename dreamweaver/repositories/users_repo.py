"""Firestore accessors for the users collection (profile + usage ledger)."""

from google.cloud.firestore_v1.base_query import FieldFilter

USERS_COLLECTION = 'users'


def doc_ref(db, uid):
    return db.collection(USERS_COLLECTION).document(uid)


def get_doc(db, uid):
    return doc_ref(db, uid).get()


def create_doc(db, uid, data):
    return doc_ref(db, uid).create(data)


def update_doc(db, uid, updates):
    return doc_ref(db, uid).update(updates)


def query_reset_before(db, reset_field_path, cutoff):
    """Stream profiles whose day window started before ``cutoff``.

    Firestore never matches documents that lack ``reset_field_path``; those are
    reached through ``stream_unanchored`` instead. Filters go in as
    ``FieldFilter`` keywords; doubles that only take ``where(field, op, value)``
    get the positional form.
    """
    users = db.collection(USERS_COLLECTION)
    try:
        query = users.where(filter=FieldFilter(reset_field_path, '<', cutoff))
    except TypeError:
        query = users.where(reset_field_path, '<', cutoff)
    return query.stream()


def stream_unanchored(db, is_anchored):
    """Stream profiles ``is_anchored(data)`` rejects; this reads the whole collection."""
    for doc in db.collection(USERS_COLLECTION).stream():
        if not is_anchored(doc.to_dict() or {}):
            yield doc
