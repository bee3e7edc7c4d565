import pytest
from flash_flare import FlareError, InvalidArgumentError, QueryBuilder, QueryState


class TestQueryState:
    """Tests for rendering the accumulated state into delegate args."""

    def test_new_state_is_empty(self):
        state = QueryState()
        assert state.is_empty()
        assert state.to_args() == {}

    def test_zero_skip_and_take_are_rendered(self):
        """A take of 0 is a real window, not an absent one."""
        state = QueryState(skip=0, take=0)
        assert state.to_args() == {"skip": 0, "take": 0}
        assert not state.is_empty()

    def test_group_by_is_rendered_as_by(self):
        state = QueryState(group_by=["status"], having={"_count": {"id": {"gt": 1}}})
        assert state.to_args() == {
            "by": ["status"],
            "having": {"_count": {"id": {"gt": 1}}},
        }

    def test_nested_include_is_rendered(self):
        nested = QueryState(where={"published": True}, take=3)
        state = QueryState(include={"posts": nested, "comments": True})
        assert state.to_args() == {
            "include": {
                "posts": {"where": {"published": True}, "take": 3},
                "comments": True,
            }
        }

    def test_copy_is_deep(self):
        state = QueryState(where={"AND": [{"a": 1}]}, include={"posts": QueryState(take=1)})
        copied = state.copy()

        copied.where["AND"].append({"b": 2})
        copied.include["posts"].take = 5

        assert state.where == {"AND": [{"a": 1}]}
        assert state.include["posts"].take == 1


class TestConstruction:
    """Tests for the chainable shaping methods."""

    def test_chain_returns_same_builder(self):
        qb = QueryBuilder()
        assert qb.where({"a": 1}) is qb
        assert qb.order({"id": "asc"}) is qb
        assert qb.limit(3) is qb

    def test_order_replaces_previous(self):
        qb = QueryBuilder().order({"id": "asc"}).order({"title": "desc"})
        assert qb.get_query().order_by == {"title": "desc"}

    def test_first_and_last(self):
        assert QueryBuilder().first().get_query().to_args() == {
            "order_by": {"created_at": "asc"},
            "take": 1,
        }
        assert QueryBuilder().last("id").get_query().to_args() == {
            "order_by": {"id": "desc"},
            "take": 1,
        }

    @pytest.mark.parametrize("method", ["limit", "skip"])
    def test_negative_window_is_rejected(self, method):
        with pytest.raises(InvalidArgumentError):
            getattr(QueryBuilder(), method)(-1)

    def test_select_accepts_list(self):
        qb = QueryBuilder().select(["id", "title"])
        assert qb.get_query().select == {"id": True, "title": True}

    def test_distinct_and_group_by_accept_list_or_varargs(self):
        a = QueryBuilder().distinct("author_id", "status").group_by(["status"])
        assert a.get_query().distinct == ["author_id", "status"]
        assert a.get_query().group_by == ["status"]

    def test_include_without_callback(self):
        qb = QueryBuilder().include("posts")
        assert qb.get_query().include == {"posts": True}

    def test_include_with_empty_callback_is_plain(self):
        qb = QueryBuilder().include("posts", lambda posts: posts)
        assert qb.get_query().include == {"posts": True}

    def test_include_with_callback_nests_state(self):
        qb = QueryBuilder().include(
            "posts", lambda posts: posts.where({"published": True}).limit(2)
        )
        assert qb.get_query().to_args() == {
            "include": {"posts": {"where": {"published": True}, "take": 2}}
        }

    @pytest.mark.parametrize(
        "condition, applied",
        [(True, True), (False, False), (lambda: True, True), (lambda: False, False)],
    )
    def test_when(self, condition, applied):
        qb = QueryBuilder().when(condition, lambda q: q.where({"a": 1}))
        assert (qb.get_query().where == {"a": 1}) is applied

    def test_unbound_builder_refuses_terminal_calls(self):
        qb = QueryBuilder().where({"a": 1})
        with pytest.raises(FlareError):
            qb._require_delegate()


class TestCloning:
    """Tests for branching queries with clone()."""

    def test_clone_starts_equal(self):
        base = QueryBuilder().where({"published": True}).order({"id": "asc"})
        assert base.clone().get_query() == base.get_query()

    def test_clone_is_independent(self):
        base = QueryBuilder().where({"published": True}).include(
            "posts", lambda p: p.where({"views": {"gt": 1}})
        )
        branch = base.clone().where({"author_id": 1}).limit(5)
        branch.get_query().include["posts"].where = {"views": 0}

        assert base.get_query().where == {"published": True}
        assert base.get_query().take is None
        assert base.get_query().include["posts"].where == {"views": {"gt": 1}}

    def test_clone_keeps_class_delegate_and_registry(self, model_registry):
        class PostQuery(QueryBuilder):
            pass

        delegate = object()
        base = PostQuery(delegate, model_registry)
        clone = base.clone()

        assert type(clone) is PostQuery
        assert clone.delegate is delegate
        assert clone.registry is model_registry

    def test_builders_are_mutable(self):
        """Without clone() both names refer to one accumulating query."""
        qb = QueryBuilder()
        alias = qb
        alias.where({"a": 1})
        assert qb.get_query().where == {"a": 1}
