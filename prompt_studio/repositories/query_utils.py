"""Shared Firestore query helpers.

Filters are passed as ``FieldFilter`` keywords for current Firestore SDKs;
simple test doubles that only accept positional filters still work.
"""

from google.cloud.firestore_v1.base_query import FieldFilter


def apply_where(query, field_path, op_string, value):
    try:
        return query.where(filter=FieldFilter(field_path, op_string, value))
    except TypeError:
        return query.where(field_path, op_string, value)
