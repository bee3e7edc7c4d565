import pytest
from flash_flare import ModelRegistry, QueryBuilder, default_model_registry

pytestmark = pytest.mark.asyncio


class PostQuery(QueryBuilder):
    def published(self):
        return self.where({"published": True})


class UserQuery(QueryBuilder):
    def active(self):
        return self.where({"status": "active"})


async def _seed(client):
    alice = await client.user.create({"data": {"email": "alice@example.com", "status": "active"}})
    bob = await client.user.create({"data": {"email": "bob@example.com"}})
    await client.post.create_many(
        {
            "data": [
                {"title": "A1", "author_id": alice["id"], "published": True, "views": 5},
                {"title": "A2", "author_id": alice["id"], "published": False, "views": 1},
                {"title": "A3", "author_id": alice["id"], "published": True, "views": 9},
                {"title": "B1", "author_id": bob["id"], "published": True, "views": 3},
            ]
        }
    )
    return alice, bob


class TestModelRegistry:
    """Tests for the name to builder factory table."""

    async def test_register_and_create(self, model_registry):
        model_registry.register("Post", PostQuery)

        assert model_registry.has("post")
        assert "POST" in model_registry
        builder = model_registry.create("post", None)
        assert isinstance(builder, PostQuery)
        assert builder.registry is model_registry

    async def test_unknown_name_returns_none(self, model_registry):
        assert model_registry.create("missing") is None
        assert model_registry.get("missing") is None

    async def test_later_registration_wins(self, model_registry):
        model_registry.register("post", QueryBuilder)
        model_registry.register("post", PostQuery)
        assert model_registry.get("post") is PostQuery

    async def test_register_many_and_clear(self, model_registry):
        model_registry.register_many({"post": PostQuery, "user": UserQuery})
        assert sorted(model_registry.registered_models()) == ["post", "user"]

        model_registry.clear()
        assert model_registry.registered_models() == []

    async def test_factory_receives_delegate_and_registry(self, model_registry):
        seen = {}

        def factory(delegate, registry):
            seen.update(delegate=delegate, registry=registry)
            return QueryBuilder(delegate, registry)

        model_registry.register("post", factory)
        model_registry.create("post", "delegate")
        assert seen == {"delegate": "delegate", "registry": model_registry}

    async def test_default_registry_is_shared(self):
        from flash_flare.registry import default_model_registry as again

        assert again is default_model_registry
        assert isinstance(default_model_registry, ModelRegistry)


class TestRegisteredBuilders:
    """Tests for custom builders handed out by the client and includes."""

    async def test_from_uses_registered_class(self, base_client, model_registry):
        model_registry.register("post", PostQuery)
        await _seed(base_client)

        builder = base_client.from_("post")
        assert isinstance(builder, PostQuery)
        rows = await builder.published().order({"title": "asc"}).find_many()
        assert [r["title"] for r in rows] == ["A1", "A3", "B1"]

    async def test_from_falls_back_to_query_builder(self, base_client):
        builder = base_client.from_("post")
        assert type(builder) is QueryBuilder

    async def test_include_callback_gets_registered_relation_builder(
        self, base_client, model_registry
    ):
        """Relation name registrations take priority."""
        model_registry.register("posts", PostQuery)
        await _seed(base_client)

        seen = []

        def shape(posts):
            seen.append(type(posts))
            return posts.published().order({"views": "desc"})

        users = await (
            base_client.from_("user")
            .where({"email": "alice@example.com"})
            .include("posts", shape)
            .find_many()
        )

        assert seen == [PostQuery]
        assert [p["title"] for p in users[0]["posts"]] == ["A3", "A1"]

    async def test_include_falls_back_to_target_model_registration(
        self, base_client, model_registry
    ):
        model_registry.register("post", PostQuery)
        seen = []
        base_client.from_("user").include("posts", lambda p: seen.append(type(p)))
        assert seen == [PostQuery]

    async def test_nested_builder_is_bound_to_related_delegate(self, base_client):
        seen = []
        base_client.from_("user").include("posts", lambda p: seen.append(p.delegate))
        assert seen == [base_client.post]

    async def test_include_window_applies_per_parent(self, base_client):
        await _seed(base_client)
        users = await (
            base_client.from_("user")
            .order({"email": "asc"})
            .include("posts", lambda p: p.order({"views": "desc"}).limit(1))
            .find_many()
        )

        assert [u["email"] for u in users] == ["alice@example.com", "bob@example.com"]
        assert [p["title"] for p in users[0]["posts"]] == ["A3"]
        assert [p["title"] for p in users[1]["posts"]] == ["B1"]

    async def test_include_to_one_relation(self, base_client):
        await _seed(base_client)
        post = await (
            base_client.from_("post").where({"title": "B1"}).include("author").find_first()
        )
        assert post["author"]["email"] == "bob@example.com"

    async def test_nested_includes(self, base_client):
        alice, _ = await _seed(base_client)
        a1 = await base_client.post.find_first({"where": {"title": "A1"}})
        await base_client.comment.create({"data": {"body": "nice", "post_id": a1["id"]}})

        user = await (
            base_client.from_("user")
            .with_id(alice["id"])
            .include(
                "posts",
                lambda p: p.where({"title": "A1"}).include("comments"),
            )
            .find_unique()
        )

        assert [c["body"] for c in user["posts"][0]["comments"]] == ["nice"]
