import pytest
import pytest_asyncio
from flash_core import PaginatedResult
from flash_flare import FlareError, InvalidArgumentError, QueryBuilder, RecordNotFoundError

pytestmark = pytest.mark.asyncio


@pytest_asyncio.fixture
async def posts(base_client):
    """Ten posts; even ones are published, views are 10, 20, ... 100."""
    await base_client.post.create_many(
        {
            "data": [
                {
                    "title": f"Post {i}",
                    "views": i * 10,
                    "published": i % 2 == 0,
                    "status": "published" if i % 2 == 0 else "draft",
                }
                for i in range(1, 11)
            ]
        }
    )
    return base_client


class TestReads:
    """Tests for the read terminals of QueryBuilder."""

    async def test_find_many(self, posts):
        rows = await (
            posts.from_("post")
            .where({"published": True})
            .where({"views": {"gt": 20}})
            .order({"views": "desc"})
            .limit(2)
            .find_many()
        )
        assert [r["title"] for r in rows] == ["Post 10", "Post 8"]

    async def test_or_where_against_database(self, posts):
        rows = await (
            posts.from_("post")
            .where({"published": True})
            .where({"views": {"gte": 80}})
            .or_where({"title": "Post 1"})
            .order({"id": "asc"})
            .find_many()
        )
        assert [r["title"] for r in rows] == ["Post 1", "Post 8", "Post 10"]

    async def test_where_group_against_database(self, posts):
        rows = await (
            posts.from_("post")
            .where({"published": True})
            .where_group(lambda g: g.where({"title": "Post 2"}).or_where({"title": "Post 3"}))
            .find_many()
        )
        assert [r["title"] for r in rows] == ["Post 2"]

    async def test_first_and_last(self, posts):
        first = await posts.from_("post").first("id").find_first()
        last = await posts.from_("post").last("views").find_first()
        assert first["title"] == "Post 1"
        assert last["title"] == "Post 10"

    async def test_find_unique_with_id(self, posts):
        row = await posts.from_("post").with_id(3).find_unique()
        assert row["title"] == "Post 3"

    async def test_or_throw(self, posts):
        with pytest.raises(RecordNotFoundError):
            await posts.from_("post").where({"views": 5}).find_first_or_throw()
        with pytest.raises(RecordNotFoundError):
            await posts.from_("post").with_id(999).find_unique_or_throw()

    async def test_select(self, posts):
        row = await posts.from_("post").with_id(1).select(["id", "title"]).find_unique()
        assert row == {"id": 1, "title": "Post 1"}

    async def test_count_respects_where(self, posts):
        assert await posts.from_("post").count() == 10
        assert await posts.from_("post").where({"published": False}).count() == 5

    async def test_aggregate_helpers(self, posts):
        published = posts.from_("post").where({"published": True})
        assert await published.clone().sum("views") == 300
        assert await published.clone().min("views") == 20
        assert await published.clone().max("views") == 100
        assert await published.clone().avg("views") == 60

    async def test_pluck_and_only(self, posts):
        titles = await posts.from_("post").where({"views": {"lte": 30}}).order({"id": "asc"}).pluck("title")
        assert titles == ["Post 1", "Post 2", "Post 3"]

        views = await posts.from_("post").where({"title": "Post 4"}).only("views")
        assert views == 40
        assert await posts.from_("post").where({"title": "Nope"}).only("views") is None

    async def test_pluck_and_only_leave_select_untouched(self, posts):
        builder = posts.from_("post").select(["id", "title"]).where({"title": "Post 4"})

        assert await builder.pluck("views") == [40]
        assert await builder.only("views") == 40
        assert await builder.find_first() == {"id": 4, "title": "Post 4"}

        bare = posts.from_("post").where({"title": "Post 4"})
        await bare.pluck("title")
        assert bare.get_query().select is None
        assert (await bare.find_first())["views"] == 40

    async def test_exists(self, posts):
        assert await posts.from_("post").where({"views": 50}).exists()
        assert not await posts.from_("post").where({"views": 55}).exists()

    async def test_unbound_builder(self):
        with pytest.raises(FlareError):
            await QueryBuilder().find_many()


class TestPaginate:
    """Tests for paginate()."""

    async def test_middle_page(self, posts):
        result = await posts.from_("post").order({"id": "asc"}).paginate(page=2, per_page=2)

        assert isinstance(result, PaginatedResult)
        assert [r["title"] for r in result.data] == ["Post 3", "Post 4"]
        assert result.meta.total == 10
        assert result.meta.last_page == 5
        assert result.meta.current_page == 2
        assert result.meta.per_page == 2
        assert result.meta.prev == 1
        assert result.meta.next == 3

    async def test_total_counts_filtered_records(self, posts):
        result = await posts.from_("post").where({"published": True}).paginate(1, 2)
        assert result.meta.total == 5
        assert result.meta.last_page == 3
        assert result.meta.prev is None

    async def test_page_past_the_end(self, posts):
        result = await posts.from_("post").paginate(page=9, per_page=5)
        assert result.data == []
        assert result.meta.next is None

    async def test_default_per_page(self, posts):
        result = await posts.from_("post").paginate()
        assert result.meta.per_page == 15
        assert len(result.data) == 10

    async def test_per_page_is_capped(self, posts, monkeypatch):
        from flash_core import flash_settings

        monkeypatch.setattr(flash_settings, "MAX_PER_PAGE", 3)
        result = await posts.from_("post").paginate(1, 50)
        assert result.meta.per_page == 3
        assert len(result.data) == 3

    @pytest.mark.parametrize("page, per_page", [(0, 10), (1, 0), (-1, 5)])
    async def test_invalid_arguments(self, posts, page, per_page):
        with pytest.raises(InvalidArgumentError):
            await posts.from_("post").paginate(page, per_page)


class TestChunk:
    """Tests for chunk()."""

    async def test_visits_every_record_once(self, posts):
        batches = []
        await posts.from_("post").order({"id": "asc"}).chunk(4, lambda rows: batches.append([r["id"] for r in rows]))
        assert batches == [[1, 2, 3, 4], [5, 6, 7, 8], [9, 10]]

    async def test_async_callback(self, posts):
        seen = []

        async def collect(rows):
            seen.extend(r["id"] for r in rows)

        await posts.from_("post").where({"published": True}).order({"id": "asc"}).chunk(2, collect)
        assert seen == [2, 4, 6, 8, 10]

    async def test_exact_multiple_stops_on_empty_page(self, posts):
        batches = []
        await posts.from_("post").order({"id": "asc"}).chunk(5, lambda rows: batches.append(len(rows)))
        assert batches == [5, 5]

    async def test_window_is_restored(self, posts):
        builder = posts.from_("post").order({"id": "asc"}).skip(1).limit(2)
        await builder.chunk(3, lambda rows: None)
        assert builder.get_query().skip == 1
        assert builder.get_query().take == 2

    async def test_window_is_restored_on_error(self, posts):
        builder = posts.from_("post").order({"id": "asc"})

        def explode(rows):
            msg = "stop"
            raise RuntimeError(msg)

        with pytest.raises(RuntimeError):
            await builder.chunk(3, explode)
        assert builder.get_query().skip is None
        assert builder.get_query().take is None

    async def test_invalid_size(self, posts):
        with pytest.raises(InvalidArgumentError):
            await posts.from_("post").chunk(0, lambda rows: None)


class TestGroups:
    """Tests for group_by() with find_groups()."""

    async def test_find_groups(self, posts):
        groups = await (
            posts.from_("post")
            .group_by("status")
            .order({"status": "asc"})
            .find_groups({"_count": {"id": True}, "_sum": {"views": True}})
        )
        assert groups == [
            {"status": "draft", "_count": {"id": 5}, "_sum": {"views": 250}},
            {"status": "published", "_count": {"id": 5}, "_sum": {"views": 300}},
        ]

    async def test_having_and_where(self, posts):
        groups = await (
            posts.from_("post")
            .where({"views": {"gte": 40}})
            .group_by("status")
            .having({"_sum": {"views": {"gt": 250}}})
            .find_groups({"_count": True})
        )
        assert groups == [{"status": "published", "_count": 4}]

    async def test_requires_group_by(self, posts):
        with pytest.raises(InvalidArgumentError):
            await posts.from_("post").find_groups({"_count": True})


class TestWrites:
    """Tests for the write terminals of QueryBuilder."""

    async def test_create_and_update(self, base_client):
        created = await base_client.from_("user").create({"email": "a@example.com"})
        updated = await base_client.from_("user").with_id(created["id"]).update({"name": "A"})

        assert updated["name"] == "A"
        assert updated["id"] == created["id"]

    async def test_update_many_and_delete_many(self, posts):
        result = await posts.from_("post").where({"published": False}).update_many({"status": "archived"})
        assert result == {"count": 5}

        result = await posts.from_("post").where({"status": "archived"}).delete_many()
        assert result == {"count": 5}
        assert await posts.from_("post").count() == 5

    async def test_delete(self, posts):
        deleted = await posts.from_("post").with_id(1).delete()
        assert deleted["title"] == "Post 1"
        assert not await posts.from_("post").with_id(1).exists()

    async def test_create_many(self, base_client):
        result = await base_client.from_("user").create_many(
            [{"email": "a@example.com"}, {"email": "b@example.com"}]
        )
        assert result == {"count": 2}

    async def test_upsert(self, base_client):
        builder = base_client.from_("user").where({"email": "a@example.com"})
        args = {"create": {"email": "a@example.com", "name": "New"}, "update": {"name": "Again"}}

        first = await builder.clone().upsert(args)
        second = await builder.clone().upsert(args)

        assert first["name"] == "New"
        assert second["name"] == "Again"
