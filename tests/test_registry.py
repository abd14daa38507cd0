"""Unit tests for the saved query registry and the filter predicate."""

import pytest

from gigmatch.domain.models import ListingKind
from gigmatch.registry import (
    InvalidQueryError,
    SavedQueryDraft,
    SavedQueryNotFoundError,
    SavedQueryRegistry,
    evaluate_predicate,
    rates_overlap,
)
from tests.helpers import make_listing, make_saved_query, memory_database, seed_user


@pytest.fixture
def database():
    db = memory_database()
    seed_user(db, "owner-1", name="Olivia Owner")
    seed_user(db, "owner-2", name="Oscar Other")
    yield db
    db.close()


@pytest.fixture
def registry(database):
    return SavedQueryRegistry(database)


class TestRatesOverlap:
    """Tests for rate range overlap with open bounds."""

    @pytest.mark.parametrize(
        "query_range,listing_range,expected",
        [
            ((60, 80), (70, 90), True),
            ((60, 80), (80, 100), True),
            ((60, 80), (81, 100), False),
            ((100, None), (70, 90), False),
            ((None, 50), (70, 90), False),
            ((None, 75), (70, 90), True),
            ((60, 80), (None, None), True),
        ],
    )
    def test_overlap(self, query_range, listing_range, expected):
        assert rates_overlap(*query_range, *listing_range) is expected


class TestEvaluatePredicate:
    """Tests for the saved query filter predicate."""

    def test_no_filters_matches_same_kind(self):
        assert evaluate_predicate(make_saved_query(), make_listing()) is True

    def test_kind_must_match(self):
        saved_query = make_saved_query(kind=ListingKind.SEEKING_WORK)
        assert evaluate_predicate(saved_query, make_listing()) is False

    def test_rate_bounds(self):
        assert evaluate_predicate(make_saved_query(rate_min=60, rate_max=80), make_listing()) is True
        assert evaluate_predicate(make_saved_query(rate_min=100), make_listing()) is False

    def test_listing_without_rate_passes_rate_filter(self):
        listing = make_listing(rate_min=None, rate_max=None)
        assert evaluate_predicate(make_saved_query(rate_min=100), listing) is True

    def test_remote_only(self):
        saved_query = make_saved_query(remote_only=True)
        assert evaluate_predicate(saved_query, make_listing(remote=True)) is True
        assert evaluate_predicate(saved_query, make_listing(remote=False)) is False

    def test_location_is_case_insensitive_substring(self):
        saved_query = make_saved_query(location="berlin")
        assert evaluate_predicate(saved_query, make_listing(location="Berlin, Germany")) is True
        assert evaluate_predicate(saved_query, make_listing(location="Munich")) is False

    def test_listing_without_location_fails_location_filter(self):
        saved_query = make_saved_query(location="berlin")
        assert evaluate_predicate(saved_query, make_listing(location=None)) is False

    def test_skills_need_non_empty_intersection(self):
        saved_query = make_saved_query(skills=["AWS", "terraform"])
        assert evaluate_predicate(saved_query, make_listing(skills=["terraform", "go"])) is True
        assert evaluate_predicate(saved_query, make_listing(skills=["react"])) is False

    def test_free_text_query_is_not_a_filter(self):
        saved_query = make_saved_query(query="haskell compiler engineer")
        assert evaluate_predicate(saved_query, make_listing()) is True


class TestSavedQueryDraft:
    """Tests for saved query input validation."""

    def test_normalizes_input(self):
        draft = SavedQueryDraft(
            name="  Cloud work ",
            kind="jobs",
            query="  ",
            skills="AWS, Terraform ,",
            location="",
        )

        assert draft.name == "Cloud work"
        assert draft.kind == ListingKind.SEEKING_HELP
        assert draft.query is None
        assert draft.skills == ["aws", "terraform"]
        assert draft.location is None

    def test_talent_maps_to_seeking_work(self):
        assert SavedQueryDraft(name="Hire", kind="talent").kind == ListingKind.SEEKING_WORK


class TestSavedQueryRegistry:
    """Tests for owner-scoped CRUD."""

    def test_create_and_get(self, registry):
        created = registry.create(
            "owner-1", {"name": "AWS gigs", "kind": "jobs", "skills": ["AWS", "Terraform"]}
        )

        fetched = registry.get("owner-1", created.id)

        assert fetched.name == "AWS gigs"
        assert fetched.skills == ["aws", "terraform"]
        assert fetched.active is True
        assert fetched.last_evaluated_at is None

    def test_invalid_draft_raises(self, registry):
        with pytest.raises(InvalidQueryError) as exc_info:
            registry.create("owner-1", {"name": " ", "kind": "jobs", "rate_min": 90, "rate_max": 10})

        assert exc_info.value.errors

    def test_rate_min_above_max_rejected(self, registry):
        with pytest.raises(InvalidQueryError, match="rate_min must be <= rate_max"):
            registry.create("owner-1", {"name": "Rates", "kind": "jobs", "rate_min": 90, "rate_max": 10})

    def test_other_owner_sees_not_found(self, registry):
        created = registry.create("owner-1", {"name": "Mine", "kind": "jobs"})

        with pytest.raises(SavedQueryNotFoundError):
            registry.get("owner-2", created.id)
        with pytest.raises(SavedQueryNotFoundError):
            registry.update("owner-2", created.id, {"name": "Stolen"})
        with pytest.raises(SavedQueryNotFoundError):
            registry.deactivate("owner-2", created.id)

    def test_list_is_owner_scoped(self, registry):
        registry.create("owner-1", {"name": "One", "kind": "jobs"})
        registry.create("owner-2", {"name": "Two", "kind": "talent"})

        assert [q.name for q in registry.list("owner-1")] == ["One"]

    def test_update_merges_and_revalidates(self, registry):
        created = registry.create(
            "owner-1", {"name": "Rates", "kind": "jobs", "rate_min": 50, "rate_max": 80}
        )

        updated = registry.update("owner-1", created.id, {"rate_max": 120, "remote_only": True})
        assert updated.rate_max == 120
        assert updated.rate_min == 50
        assert updated.remote_only is True

        with pytest.raises(InvalidQueryError):
            registry.update("owner-1", created.id, {"rate_max": 10})

    def test_deactivate_hides_from_default_list(self, registry):
        created = registry.create("owner-1", {"name": "Old", "kind": "jobs"})

        deactivated = registry.deactivate("owner-1", created.id)

        assert deactivated.active is False
        assert registry.list("owner-1") == []
        assert [q.id for q in registry.list("owner-1", include_inactive=True)] == [created.id]
