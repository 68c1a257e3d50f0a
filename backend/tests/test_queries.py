"""
Tests for the query façade: by-id / first-match / all-matches reads, the
options pipeline, cursor pagination and the not-found policy.
"""
import asyncio
import sqlite3
from datetime import datetime, timedelta

import pytest

from intercamb.database import (
    BuilderFilter,
    Document,
    DocumentStore,
    EntityRegistry,
    EntityType,
    MatchFilter,
    QueryFacade,
    QueryOptions,
)
from intercamb.database.queries import fill_query
from intercamb.errors import DomainError, NotFoundError, UnregisteredEntityTypeError


def oid(n: int) -> str:
    return f"{n:024x}"


@pytest.fixture
async def tasks(store):
    """25 tasks of one client, inserted out of name order; ids follow names."""
    bodies = [
        {"_id": oid(i + 1), "client": "client-1", "company": "company-1", "name": f"task-{i:02d}"}
        for i in range(25)
    ]
    await store.insert_many(EntityType.TASK, list(reversed(bodies)))
    return bodies


@pytest.fixture
async def clients(store):
    """Five clients registered a day apart; ids follow registration order."""
    start = datetime(2024, 1, 1, 9, 0, 0)
    bodies = [
        {
            "_id": oid(100 + i),
            "company": "company-1",
            "forename": name,
            "registration_date": start + timedelta(days=i),
        }
        for i, name in enumerate(["Ana", "Bruno", "Carla", "Diego", "Elisa"])
    ]
    await store.insert_many(EntityType.CLIENT, bodies)
    return bodies


class TestFetchById:
    """Tests for fetch_by_id."""

    async def test_returns_existing_entity(self, queries, clients):
        """fetch_by_id returns a live document for an existing id."""
        client = await queries.fetch_by_id(EntityType.CLIENT, oid(101))
        assert isinstance(client, Document)
        assert client.id == oid(101)
        assert client.forename == "Bruno"

    async def test_missing_entity_raises_entity_not_found(self, queries):
        """A missing id raises the entity's not-found error by default."""
        with pytest.raises(NotFoundError) as exc_info:
            await queries.fetch_by_id(EntityType.CLIENT, "abc123")
        assert exc_info.value.error_code == "client_not_found"
        assert exc_info.value.message == "Client not found"
        assert exc_info.value.status_code == 404

    async def test_missing_entity_not_required_returns_none(self, queries):
        """require=False turns a missing id into None."""
        result = await queries.fetch_by_id(EntityType.CLIENT, "abc123", QueryOptions(require=False))
        assert result is None

    async def test_accepts_entity_name_strings(self, queries, clients):
        """Entity types may be given by name."""
        client = await queries.fetch_by_id("Client", oid(100))
        assert client.forename == "Ana"

    async def test_not_found_code_is_per_entity(self, queries):
        """Each entity type carries its own not-found code."""
        with pytest.raises(NotFoundError) as exc_info:
            await queries.fetch_by_id(EntityType.MESSAGE_TEMPLATE, "missing")
        assert exc_info.value.error_code == "default_message_not_found"


class TestFetchOne:
    """Tests for fetch_one."""

    async def test_literal_filter(self, queries, clients):
        """A MatchFilter selects by field equality."""
        client = await queries.fetch_one(EntityType.CLIENT, MatchFilter({"forename": "Carla"}))
        assert client.id == oid(102)

    async def test_builder_filter(self, queries, clients):
        """A BuilderFilter constrains the query handle directly."""
        def starts_with_d(query):
            query.where("forename").regex("^d", ignore_case=True)

        client = await queries.fetch_one(EntityType.CLIENT, BuilderFilter(starts_with_d))
        assert client.forename == "Diego"

    async def test_first_match_under_sort(self, queries, clients):
        """fetch_one returns the first match in sort order."""
        client = await queries.fetch_one(
            EntityType.CLIENT,
            MatchFilter({"company": "company-1"}),
            QueryOptions(sort={"registration_date": -1}),
        )
        assert client.forename == "Elisa"

    async def test_permissive_find_on_empty_store(self, queries):
        """fetch_one with require=False returns None on no match."""
        result = await queries.fetch_one(
            EntityType.INSTITUTION, MatchFilter({"name": "Unknown U"}), QueryOptions(require=False),
        )
        assert result is None

    async def test_strict_find_raises(self, queries):
        """fetch_one raises when nothing matches by default."""
        with pytest.raises(NotFoundError) as exc_info:
            await queries.fetch_one(EntityType.TASK, MatchFilter({"name": "nope"}))
        assert exc_info.value.error_code == "task_not_found"

    async def test_no_filter_matches_anything(self, queries, clients):
        """A missing filter matches every entity."""
        client = await queries.fetch_one(EntityType.CLIENT)
        assert client is not None


class TestFetchMany:
    """Tests for fetch_many."""

    async def test_no_match_returns_empty_list(self, queries):
        """fetch_many returns an empty list when nothing matches."""
        result = await queries.fetch_many(EntityType.TASK, MatchFilter({"client": "nobody"}))
        assert result == []

    async def test_require_is_ignored_for_lists(self, queries):
        """require=True never makes fetch_many raise."""
        result = await queries.fetch_many(EntityType.TASK, MatchFilter({"client": "nobody"}), QueryOptions(require=True))
        assert result == []

    async def test_returns_all_matches(self, queries, tasks):
        """fetch_many returns every matching document."""
        result = await queries.fetch_many(EntityType.TASK, MatchFilter({"client": "client-1"}))
        assert len(result) == 25
        assert all(isinstance(task, Document) for task in result)

    async def test_literal_and_builder_filters_are_equivalent(self, queries, store, tasks):
        """Equivalent literal and builder filters match the same entities."""
        await store.insert_one(EntityType.TASK, {"client": "client-2", "company": "company-2", "name": "other"})

        literal = await queries.fetch_many(EntityType.TASK, MatchFilter({"company": "company-1"}))
        built = await queries.fetch_many(
            EntityType.TASK, BuilderFilter(lambda query: query.where("company").equals("company-1")),
        )
        assert {t.id for t in literal} == {t.id for t in built}
        assert len(literal) == 25

    async def test_limit_with_sort_returns_first_n_of_sorted(self, queries, tasks):
        """limit keeps the first n entities of the sorted sequence."""
        everything = await queries.fetch_many(EntityType.TASK, options=QueryOptions(sort=[("name", -1)]))
        limited = await queries.fetch_many(EntityType.TASK, options=QueryOptions(sort=[("name", -1)], limit=7))
        assert [t.id for t in limited] == [t.id for t in everything[:7]]

    async def test_select_does_not_change_matches(self, queries, tasks):
        """select changes returned fields, never the matched entities."""
        full = await queries.fetch_many(EntityType.TASK, MatchFilter({"client": "client-1"}), QueryOptions(lean=True))
        projected = await queries.fetch_many(
            EntityType.TASK, MatchFilter({"client": "client-1"}), QueryOptions(select="name", lean=True),
        )
        assert sorted(t["_id"] for t in full) == sorted(t["_id"] for t in projected)
        assert all(set(t) == {"_id", "name"} for t in projected)

    async def test_select_exclusion(self, queries, tasks):
        """Exclusion projections drop the named fields, _id included."""
        projected = await queries.fetch_many(EntityType.TASK, options=QueryOptions(select="-company -_id", lean=True))
        assert all(set(t) == {"client", "name"} for t in projected)

    async def test_range_and_in_constraints(self, queries, clients):
        """Range and membership constraints combine with AND."""
        def window(query):
            query.where("registration_date").gte(datetime(2024, 1, 2)).lt(datetime(2024, 1, 4, 9))
            query.where("forename").in_(["Bruno", "Diego", "Elisa"])

        result = await queries.fetch_many(EntityType.CLIENT, BuilderFilter(window), QueryOptions(sort="registration_date"))
        assert [c.forename for c in result] == ["Bruno"]

    async def test_or_constraint(self, queries, clients):
        """or_ matches any of the alternatives."""
        def ana_or_elisa(query):
            query.or_([{"forename": "Ana"}, {"forename": "Elisa"}])

        result = await queries.fetch_many(EntityType.CLIENT, BuilderFilter(ana_or_elisa), QueryOptions(sort="forename"))
        assert [c.forename for c in result] == ["Ana", "Elisa"]


class TestCursorPagination:
    """Tests for `last`-based pagination."""

    async def test_pages_by_name_do_not_overlap(self, queries, tasks):
        """Cursor pages by ascending name are consecutive and disjoint."""
        filter = MatchFilter({"client": "client-1"})
        first = await queries.fetch_many(EntityType.TASK, filter, QueryOptions(sort={"name": 1}, limit=10))
        second = await queries.fetch_many(
            EntityType.TASK, filter, QueryOptions(sort={"name": 1}, limit=10, last=first[-1].id),
        )
        third = await queries.fetch_many(
            EntityType.TASK, filter, QueryOptions(sort={"name": 1}, limit=10, last=second[-1].id),
        )

        assert [t.name for t in first] == [f"task-{i:02d}" for i in range(10)]
        assert [t.name for t in second] == [f"task-{i:02d}" for i in range(10, 20)]
        assert [t.name for t in third] == [f"task-{i:02d}" for i in range(20, 25)]
        assert not {t.id for t in first} & {t.id for t in second}

    async def test_descending_sort_pages_below_cursor(self, queries, clients):
        """A descending sort pages to ids below the cursor."""
        cursor = oid(103)
        result = await queries.fetch_many(
            EntityType.CLIENT, options=QueryOptions(sort=[("registration_date", -1)], last=cursor),
        )
        assert [c.id for c in result] == [oid(102), oid(101), oid(100)]
        assert all(c.id < cursor for c in result)

    async def test_ascending_sort_pages_above_cursor(self, queries, clients):
        """An ascending sort pages to ids above the cursor."""
        cursor = oid(101)
        result = await queries.fetch_many(
            EntityType.CLIENT, options=QueryOptions(sort="registration_date", last=cursor),
        )
        assert [c.id for c in result] == [oid(102), oid(103), oid(104)]

    async def test_no_sort_pages_above_cursor(self, queries, clients):
        """Without a sort the cursor pages upwards."""
        result = await queries.fetch_many(EntityType.CLIENT, options=QueryOptions(last=oid(102)))
        assert sorted(c.id for c in result) == [oid(103), oid(104)]

    async def test_mixed_direction_sort_counts_as_descending(self, queries, clients):
        """Any descending key makes the cursor page downwards."""
        result = await queries.fetch_many(
            EntityType.CLIENT,
            options=QueryOptions(sort=[("company", 1), ("registration_date", -1)], last=oid(102)),
        )
        assert sorted(c.id for c in result) == [oid(100), oid(101)]


class TestLeanAndPopulate:
    """Tests for lean results and relation expansion."""

    async def test_lean_returns_detached_dicts(self, queries, clients):
        """Lean results are plain dicts detached from the store."""
        client = await queries.fetch_by_id(EntityType.CLIENT, oid(100), QueryOptions(lean=True))
        assert type(client) is dict
        client["forename"] = "Changed"

        again = await queries.fetch_by_id(EntityType.CLIENT, oid(100), QueryOptions(lean=True))
        assert again["forename"] == "Ana"

    async def test_dates_come_back_as_iso_strings(self, queries, clients):
        """Stored datetimes read back as ISO strings."""
        client = await queries.fetch_by_id(EntityType.CLIENT, oid(100), QueryOptions(lean=True))
        assert client["registration_date"] == "2024-01-01T09:00:00"

    async def test_populate_reference(self, queries, store):
        """populate replaces a reference id with the referenced entity."""
        plan = await store.insert_one(EntityType.PLAN, {"name": "Gold", "company": "company-1"})
        await store.insert_one(EntityType.CLIENT, {"_id": oid(1), "forename": "Ana", "plan": plan["_id"]})

        client = await queries.fetch_by_id(EntityType.CLIENT, oid(1), QueryOptions(populate="plan"))
        assert isinstance(client.plan, Document)
        assert client.plan.name == "Gold"

        lean = await queries.fetch_by_id(EntityType.CLIENT, oid(1), QueryOptions(populate=["plan"], lean=True))
        assert lean["plan"] == {"_id": plan["_id"], "name": "Gold", "company": "company-1"}

    async def test_populate_several_relations(self, queries, store):
        """Several relations can be populated in one call."""
        company = await store.insert_one(EntityType.COMPANY, {"name": "Acme"})
        plan = await store.insert_one(EntityType.PLAN, {"name": "Gold"})
        await store.insert_one(
            EntityType.CLIENT, {"_id": oid(1), "company": company["_id"], "plan": plan["_id"]},
        )

        client = await queries.fetch_by_id(
            EntityType.CLIENT, oid(1), QueryOptions(populate=["plan", "company"], lean=True),
        )
        assert client["plan"]["name"] == "Gold"
        assert client["company"]["name"] == "Acme"

    async def test_populate_missing_reference_is_none(self, queries, store):
        """A dangling reference populates as None."""
        await store.insert_one(EntityType.CLIENT, {"_id": oid(1), "plan": "gone"})
        client = await queries.fetch_by_id(EntityType.CLIENT, oid(1), QueryOptions(populate="plan", lean=True))
        assert client["plan"] is None

    async def test_populate_list_reference_drops_missing(self, queries, store):
        """Dangling ids are dropped from populated id lists, order kept."""
        first = await store.insert_one(EntityType.DEFAULT_TASK, {"name": "Passport"})
        second = await store.insert_one(EntityType.DEFAULT_TASK, {"name": "Visa"})
        plan = await store.insert_one(
            EntityType.PLAN, {"name": "Gold", "default_tasks": [second["_id"], "gone", first["_id"]]},
        )

        loaded = await queries.fetch_by_id(EntityType.PLAN, plan["_id"], QueryOptions(populate="default_tasks", lean=True))
        assert [t["name"] for t in loaded["default_tasks"]] == ["Visa", "Passport"]

    async def test_populate_virtual_relation(self, queries, store, tasks):
        """A virtual relation populates with every entity pointing back."""
        await store.insert_one(EntityType.CLIENT, {"_id": "client-1", "forename": "Ana"})
        client = await queries.fetch_by_id(EntityType.CLIENT, "client-1", QueryOptions(populate="tasks"))
        assert len(client.tasks) == 25
        assert all(isinstance(task, Document) for task in client.tasks)

    async def test_populate_nested_reference(self, queries, store):
        """Dotted relation paths populate inside sub-documents."""
        institution = await store.insert_one(EntityType.INSTITUTION, {"name": "UBA", "country": "AR"})
        await store.insert_one(
            EntityType.CLIENT,
            {"_id": oid(1), "intended_course": {"name": "Medicine", "institution": institution["_id"]}},
        )
        client = await queries.fetch_by_id(
            EntityType.CLIENT, oid(1), QueryOptions(populate="intended_course.institution", lean=True),
        )
        assert client["intended_course"]["institution"]["name"] == "UBA"
        assert client["intended_course"]["name"] == "Medicine"

    async def test_populate_unknown_relation_raises(self, queries, clients):
        """Populating an unregistered relation raises ValueError."""
        with pytest.raises(ValueError, match="not a relation"):
            await queries.fetch_by_id(EntityType.CLIENT, oid(100), QueryOptions(populate="unicorns"))

    async def test_populate_hides_account_password(self, queries, store):
        """Expanded accounts never carry their password."""
        await store.insert_one(EntityType.ACCOUNT, {"_id": "acc-1", "email": "a@example.com", "password": "HASH"})
        await store.insert_one(EntityType.COMPANY, {"_id": "co-1", "name": "Acme", "owner": "acc-1"})

        lean = await queries.fetch_by_id(EntityType.COMPANY, "co-1", QueryOptions(populate="owner", lean=True))
        assert lean["owner"] == {"_id": "acc-1", "email": "a@example.com"}

        company = await queries.fetch_by_id(EntityType.COMPANY, "co-1", QueryOptions(populate="owner"))
        assert "password" not in company.owner

        account = await queries.fetch_by_id(EntityType.ACCOUNT, "acc-1", QueryOptions(lean=True))
        assert account["password"] == "HASH"

    async def test_populate_rejects_sub_document_references(self, queries, store):
        """A reference field holding a sub-document raises ValueError naming the path."""
        await store.insert_one(EntityType.CLIENT, {"_id": oid(1), "plan": {"name": "Gold"}})
        with pytest.raises(ValueError, match="'plan' must hold Plan ids"):
            await queries.fetch_by_id(EntityType.CLIENT, oid(1), QueryOptions(populate="plan"))


class TestPolicyAndErrors:
    """Tests for defaults, unregistered types and store failures."""

    def test_fill_query_defaults_require(self, store):
        """fill_query defaults require to True and keeps explicit values."""
        query = store.find(EntityType.CLIENT)
        assert fill_query(query, None).require is True
        assert fill_query(store.find(EntityType.CLIENT), QueryOptions(limit=5)).require is True
        assert fill_query(store.find(EntityType.CLIENT), QueryOptions(require=False)).require is False

    async def test_unregistered_type_fails_loudly(self, queries):
        """An unregistered entity type raises, even with require=False."""
        with pytest.raises(UnregisteredEntityTypeError) as exc_info:
            await queries.fetch_by_id("Unicorn", "id-1", QueryOptions(require=False))
        assert not isinstance(exc_info.value, DomainError)
        assert exc_info.value.entity_type == "Unicorn"

    async def test_registry_is_consulted_before_the_store(self, store):
        """The registry is checked before any store access."""
        facade = QueryFacade(EntityRegistry([]), store)
        with pytest.raises(UnregisteredEntityTypeError):
            await facade.fetch_many(EntityType.CLIENT)

    async def test_store_failures_propagate_unchanged(self, tmp_path, registry):
        """sqlite errors reach the caller untranslated."""
        facade = QueryFacade(registry, DocumentStore(tmp_path / "empty.db", registry))
        with pytest.raises(sqlite3.OperationalError, match="no such table"):
            await facade.fetch_many(EntityType.CLIENT)

    async def test_filter_must_be_a_filter_variant(self, queries):
        """A bare mapping is not accepted as a filter."""
        with pytest.raises(TypeError):
            await queries.fetch_many(EntityType.CLIENT, {"forename": "Ana"})

    async def test_concurrent_calls_are_independent(self, queries, clients):
        """Concurrent façade calls do not interfere."""
        results = await asyncio.gather(
            queries.fetch_by_id(EntityType.CLIENT, oid(100)),
            queries.fetch_by_id(EntityType.CLIENT, oid(104)),
            queries.fetch_many(EntityType.CLIENT, MatchFilter({"forename": "Carla"})),
            queries.fetch_by_id(EntityType.CLIENT, "missing", QueryOptions(require=False)),
        )
        assert results[0].forename == "Ana"
        assert results[1].forename == "Elisa"
        assert [c.id for c in results[2]] == [oid(102)]
        assert results[3] is None
