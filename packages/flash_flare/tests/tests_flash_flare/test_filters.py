import pytest
from flash_flare.expressions import F, is_predicate, parse_lookup
from flash_flare.filters import build_condition, build_order_by

from .models import Post


def resolve(name):
    if name not in Post.__table__.c:
        msg = f"Field '{name}' not found on model Post"
        raise ValueError(msg)
    return getattr(Post, name)


def sql(expr):
    return str(expr)


class TestBuildCondition:
    """Tests for translating condition trees into SQL expressions."""

    def test_empty_tree(self):
        assert build_condition(None, resolve) is None
        assert build_condition({}, resolve) is None

    def test_equality(self):
        assert sql(build_condition({"status": "draft"}, resolve)) == "posts.status = :status_1"

    def test_none_is_null_check(self):
        assert sql(build_condition({"author_id": None}, resolve)) == "posts.author_id IS NULL"

    def test_operator_dict(self):
        expr = build_condition({"views": {"gt": 1, "lte": 9}}, resolve)
        assert sql(expr) == "posts.views > :views_1 AND posts.views <= :views_2"

    def test_lookup_suffix(self):
        assert sql(build_condition({"views__gte": 3}, resolve)) == "posts.views >= :views_1"

    def test_in(self):
        assert "IN" in sql(build_condition({"id": {"in": [1, 2]}}, resolve))

    def test_or_and_nesting(self):
        tree = {"OR": [{"AND": [{"status": "a"}, {"views": 1}]}, {"title": "t"}]}
        assert sql(build_condition(tree, resolve)) == (
            "posts.status = :status_1 AND posts.views = :views_1 OR posts.title = :title_1"
        )

    def test_empty_or_matches_nothing(self):
        assert sql(build_condition({"OR": []}, resolve)) == "false"

    def test_empty_and_matches_everything(self):
        assert build_condition({"AND": []}, resolve) is None

    def test_not(self):
        assert sql(build_condition({"NOT": {"status": "draft"}}, resolve)) == (
            "posts.status != :status_1"
        )

    def test_not_operator(self):
        assert sql(build_condition({"author_id": {"not": None}}, resolve)) == (
            "posts.author_id IS NOT NULL"
        )

    def test_insensitive_contains(self):
        expr = build_condition({"title": {"contains": "X", "mode": "insensitive"}}, resolve)
        assert "lower(posts.title)" in sql(expr)

    def test_unknown_field_raises(self):
        with pytest.raises(ValueError, match="not found"):
            build_condition({"missing": 1}, resolve)

    def test_unknown_operator_is_plain_value(self):
        """A dict that is not all operators compares as a JSON value."""
        assert not is_predicate({"theme": "dark"})
        assert is_predicate({"gt": 1, "not": 5})

    def test_having_aggregates_need_opt_in(self):
        having = {"_count": {"id": {"gt": 1}}}
        assert sql(build_condition(having, resolve, allow_aggregates=True)) == (
            "count(posts.id) > :count_1"
        )
        with pytest.raises(ValueError):
            build_condition(having, resolve)

    def test_nested_lookup_is_rejected(self):
        with pytest.raises(ValueError, match="Nested lookups"):
            parse_lookup("author__name__exact")


class TestBuildOrderBy:
    """Tests for ordering specs."""

    def test_mapping(self):
        clauses = build_order_by({"views": "desc"}, resolve)
        assert [sql(c) for c in clauses] == ["posts.views DESC"]

    def test_list_of_mappings(self):
        clauses = build_order_by([{"status": "asc"}, {"id": "DESC"}], resolve)
        assert [sql(c) for c in clauses] == ["posts.status ASC", "posts.id DESC"]

    def test_ordering_string(self):
        clauses = build_order_by("-views,title", resolve)
        assert [sql(c) for c in clauses] == ["posts.views DESC", "posts.title ASC"]

    def test_bad_direction(self):
        with pytest.raises(ValueError, match="sort direction"):
            build_order_by({"views": "up"}, resolve)


class TestF:
    def test_arithmetic_resolves_against_model(self):
        expr = (F("views") + 1).resolve(Post)
        assert sql(expr) == "posts.views + :views_1"

    def test_unknown_field(self):
        with pytest.raises(AttributeError):
            F("missing").resolve(Post)

    def test_repr(self):
        assert repr(F("views") * 2) == "F('views' * 2)"
