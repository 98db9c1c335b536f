from prompt_studio.repositories.query_utils import apply_where


class _FilterCapableQuery:
    def __init__(self):
        self.kwargs = None

    def where(self, *args, **kwargs):
        self.kwargs = kwargs
        return self


class _PositionalOnlyQuery:
    def __init__(self):
        self.args = None

    def where(self, *args, **kwargs):
        if "filter" in kwargs:
            raise TypeError("filter keyword unsupported")
        self.args = args
        return self


def test_apply_where_prefers_field_filter_keyword():
    query = _FilterCapableQuery()

    result = apply_where(query, "affiliate_id", "==", "aff-user-4")

    assert result is query
    assert query.kwargs is not None
    assert "filter" in query.kwargs


def test_apply_where_falls_back_to_positional_for_simple_test_doubles():
    query = _PositionalOnlyQuery()

    result = apply_where(query, "affiliate_id", "==", "aff-user-4")

    assert result is query
    assert query.args == ("affiliate_id", "==", "aff-user-4")


def test_users_repo_queries_by_affiliate_id():
    from prompt_studio.repositories import users_repo

    class _Doc:
        id = "user-4"

        def to_dict(self):
            return {"affiliate_id": "aff-user-4"}

    class _Query(_PositionalOnlyQuery):
        def limit(self, count):
            self.count = count
            return self

        def stream(self):
            return iter([_Doc()])

    query = _Query()

    class _DB:
        def collection(self, name):
            assert name == "users"
            return query

    docs = users_repo.query_by_affiliate_id(_DB(), "aff-user-4")

    assert [doc.id for doc in docs] == ["user-4"]
    assert query.args == ("affiliate_id", "==", "aff-user-4")
    assert query.count == 1
