"""Tests for the marketplace facade and its assembly from configuration."""

from datetime import timedelta

import pytest

from gigmatch.config import AppConfig, ConfigurationError, EnvironmentConfig
from gigmatch.domain.models import ListingKind
from gigmatch.matching import LexicalRanker, ModelUnavailable, RankingOrchestrator
from gigmatch.notifications import NotificationQueue
from gigmatch.registry import SavedQueryNotFoundError
from gigmatch.service import SAVED_FILTER_REASON, MarketplaceService, SearchFilters, build_service
from tests.helpers import FakeTransport, make_listing, memory_database, seed_listing, seed_user
from tests.helpers.factories import BASE_TIME


class UnavailableRanker:
    name = "model"

    def score_candidates(self, query, listings, searcher_profile=None, kind=None):
        raise ModelUnavailable("ranking API returned 503", status_code=503)


@pytest.fixture
def database():
    db = memory_database()
    seed_user(db, "owner-1", name="Priya Poster")
    seed_user(db, "searcher-1", name="Sam Searcher")
    yield db
    db.close()


@pytest.fixture
def service(database):
    return MarketplaceService(database, RankingOrchestrator())


class TestSearchFilters:
    def test_empty_accepts_everything(self):
        assert SearchFilters().accepts(make_listing())

    def test_skills(self):
        assert SearchFilters(skills=["React ", "vue"]).accepts(make_listing())
        assert not SearchFilters(skills=["go"]).accepts(make_listing())

    def test_rate_max_compares_listing_minimum(self):
        assert SearchFilters(rate_max=70).accepts(make_listing(rate_min=70, rate_max=90))
        assert not SearchFilters(rate_max=60).accepts(make_listing(rate_min=70, rate_max=90))
        assert SearchFilters(rate_max=60).accepts(make_listing(rate_min=None, rate_max=None))

    def test_remote_only(self):
        assert not SearchFilters(remote_only=True).accepts(make_listing(remote=False))


class TestSearch:
    """Tests for MarketplaceService.search."""

    def test_excludes_callers_own_listings(self, database, service):
        seed_listing(database, "theirs", owner_id="owner-1")
        seed_listing(database, "mine", owner_id="searcher-1")

        outcome = service.search("react developer", "jobs", caller_id="searcher-1")

        assert [r.listing.id for r in outcome.results] == ["theirs"]
        assert outcome.results[0].score == pytest.approx(0.7)
        assert outcome.degraded is False
        assert outcome.backend == "lexical"

    def test_kind_selects_listing_kind(self, database, service):
        seed_listing(database, "job", owner_id="owner-1")
        seed_listing(database, "talent", owner_id="owner-1", kind=ListingKind.SEEKING_WORK)

        outcome = service.search("react developer", "talent")

        assert [r.listing.id for r in outcome.results] == ["talent"]

    def test_filters_applied_before_ranking(self, database, service):
        seed_listing(database, "remote-cheap", owner_id="owner-1", rate_min=50, rate_max=60)
        seed_listing(database, "remote-pricey", owner_id="owner-1", rate_min=120, rate_max=150)
        seed_listing(database, "onsite", owner_id="owner-1", remote=False, rate_min=50, rate_max=60)

        outcome = service.search(
            "react developer", ListingKind.SEEKING_HELP, filters=SearchFilters(rate_max=80, remote_only=True)
        )

        assert [r.listing.id for r in outcome.results] == ["remote-cheap"]

    def test_expired_listings_excluded(self, database, service):
        seed_listing(database, "expired", owner_id="owner-1", expires_at=BASE_TIME - timedelta(days=1))

        assert service.search("react developer", "jobs").results == []

    def test_degrades_when_model_unavailable(self, database):
        seed_listing(database, "l-1", owner_id="owner-1")
        orchestrator = RankingOrchestrator(lexical=LexicalRanker(), model=UnavailableRanker())
        service = MarketplaceService(database, orchestrator)

        outcome = service.search("react developer", "jobs", caller_id="searcher-1")

        assert outcome.degraded is True
        assert [r.listing.id for r in outcome.results] == ["l-1"]

    def test_no_candidates(self, service):
        outcome = service.search("react developer", "jobs")

        assert outcome.results == []
        assert outcome.degraded is False


class TestSavedSearches:
    """Tests for saved search operations on the facade."""

    def save(self, service, **overrides):
        draft = {"name": "Cloud infra", "kind": "jobs", "skills": "aws,terraform"}
        draft.update(overrides)
        return service.save_search("searcher-1", draft)

    def test_save_and_list(self, service):
        created = self.save(service)

        listed = service.list_saved_searches("searcher-1")

        assert [s.id for s in listed] == [created.id]
        assert listed[0].skills == ["aws", "terraform"]
        assert listed[0].kind == ListingKind.SEEKING_HELP

    def test_deactivate(self, service):
        created = self.save(service)

        deactivated = service.deactivate_saved_search("searcher-1", created.id)

        assert deactivated.active is False
        assert service.list_saved_searches("searcher-1") == []
        assert len(service.list_saved_searches("searcher-1", include_inactive=True)) == 1

    def test_run_ranks_by_query_text(self, database, service):
        seed_listing(database, "react", owner_id="owner-1")
        seed_listing(database, "vue", owner_id="owner-1", title="Vue Developer", skills=["vue"])
        created = self.save(service, skills="", query="react developer")

        results = service.run_saved_search("searcher-1", created.id)

        assert [r.listing.id for r in results] == ["react", "vue"]
        assert results[0].score > results[1].score

    def test_run_ranks_by_skills_without_query(self, database, service):
        seed_listing(database, "aws", owner_id="owner-1", title="AWS migration", skills=["aws"])
        seed_listing(database, "react", owner_id="owner-1")
        created = self.save(service)

        results = service.run_saved_search("searcher-1", created.id)

        assert [r.listing.id for r in results] == ["aws"]

    def test_run_without_query_or_skills_lists_newest_first(self, database, service):
        seed_listing(database, "older", owner_id="owner-1", created_at=BASE_TIME - timedelta(days=2))
        seed_listing(database, "newer", owner_id="owner-1", created_at=BASE_TIME - timedelta(days=1))
        seed_listing(database, "onsite", owner_id="owner-1", remote=False)
        created = self.save(service, skills="", remote_only=True)

        results = service.run_saved_search("searcher-1", created.id)

        assert [r.listing.id for r in results] == ["newer", "older"]
        assert all(r.score == 1.0 and r.reasons == [SAVED_FILTER_REASON] for r in results)

    def test_run_does_not_move_cursor(self, database, service):
        seed_listing(database, "aws", owner_id="owner-1", skills=["aws"])
        created = self.save(service)

        service.run_saved_search("searcher-1", created.id)

        assert service.registry.get("searcher-1", created.id).last_evaluated_at is None

    def test_run_someone_elses_query(self, service):
        created = self.save(service)

        with pytest.raises(SavedQueryNotFoundError):
            service.run_saved_search("owner-1", created.id)


class TestDispatch:
    def test_requires_dispatcher(self, service):
        with pytest.raises(ConfigurationError, match="not configured"):
            service.dispatch_notifications()


class TestBuildService:
    """Tests for build_service wiring."""

    def test_without_smtp_or_key(self, database):
        service = build_service(AppConfig(), EnvironmentConfig(), database=database)

        assert service.dispatcher is None
        assert service.orchestrator.model_configured is False
        assert service.database is database

    def test_api_key_enables_model(self, database):
        service = build_service(AppConfig(), EnvironmentConfig(anthropic_api_key="sk-test"), database=database)

        assert service.orchestrator.model_configured is True

    def test_ranking_disabled_ignores_key(self, database):
        app_config = AppConfig(ranking={"enabled": False})

        service = build_service(app_config, EnvironmentConfig(anthropic_api_key="sk-test"), database=database)

        assert service.orchestrator.model_configured is False

    def test_smtp_settings_create_dispatcher(self, database):
        env_config = EnvironmentConfig(smtp_host="smtp.example.com", smtp_port=587, smtp_sender_email="a@example.com")

        service = build_service(AppConfig(), env_config, database=database)

        assert service.dispatcher is not None

    def test_injected_transport_delivers(self, database):
        seed_user(database, "reader-1", email="reader@example.com")
        transport = FakeTransport()
        service = build_service(AppConfig(), EnvironmentConfig(), database=database, transport=transport)
        NotificationQueue(database).enqueue_message_received("reader-1", "c-1", "searcher-1", "m-1", "Hello!")

        report = service.dispatch_notifications()

        assert report.sent == 1
        assert transport.sent[0]["address"] == "reader@example.com"
        assert transport.sent[0]["subject"] == "[opengig] New message received"
