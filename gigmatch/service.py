"""Marketplace facade used by the CLI and any front end.

Wires the store, ranking, saved-query registry, alert sweeper and
dispatcher together behind the operations callers need.
"""

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Union

from gigmatch.alerts import AlertSweeper, ExpirySweepSummary, SweepSummary
from gigmatch.config import AppConfig, ConfigurationError, EnvironmentConfig
from gigmatch.domain.models import Listing, ListingKind, MatchResult, RankingOutcome, SavedQuery
from gigmatch.logging import get_logger
from gigmatch.matching import LexicalScorer, RankingOrchestrator, build_orchestrator
from gigmatch.notifications import (
    DeliveryReport,
    DeliveryTransport,
    NotificationDispatcher,
    SMTPTransport,
    TemplateRenderer,
)
from gigmatch.persistence import Database, ListingRepository, UserRepository
from gigmatch.registry import SavedQueryDraft, SavedQueryRegistry, evaluate_predicate

logger = get_logger(__name__, component="service")

SAVED_FILTER_REASON = "Matches saved filters"


@dataclass
class SearchFilters:
    """Optional narrowing applied before ranking a live search.

    Attributes:
        skills: Keep listings sharing at least one of these skills
        rate_max: Keep listings whose minimum rate is at most this
        remote_only: Keep only remote listings
    """

    skills: List[str] = field(default_factory=list)
    rate_max: Optional[int] = None
    remote_only: bool = False

    def accepts(self, listing: Listing) -> bool:
        if self.skills:
            wanted = {skill.strip().lower() for skill in self.skills if skill.strip()}
            if wanted and not wanted.intersection(listing.skills):
                return False
        if self.rate_max is not None and listing.rate_min is not None:
            if listing.rate_min > self.rate_max:
                return False
        if self.remote_only and not listing.remote:
            return False
        return True


def _coerce_kind(kind: Union[ListingKind, str]) -> ListingKind:
    if isinstance(kind, ListingKind):
        return kind
    return ListingKind.from_search_type(kind)


class MarketplaceService:
    """Search, saved searches and the alert pipeline behind one object."""

    def __init__(
        self,
        database: Database,
        orchestrator: RankingOrchestrator,
        app_config: Optional[AppConfig] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        sweeper: Optional[AlertSweeper] = None,
    ):
        self.database = database
        self.orchestrator = orchestrator
        self.app_config = app_config or AppConfig()
        self.registry = SavedQueryRegistry(database)
        self.sweeper = sweeper or AlertSweeper(database, self.app_config.alerts)
        self.dispatcher = dispatcher

    def search(
        self,
        query: str,
        kind: Union[ListingKind, str],
        caller_id: Optional[str] = None,
        filters: Optional[SearchFilters] = None,
    ) -> RankingOutcome:
        """Rank eligible listings of ``kind`` against a free-text query.

        The caller's own listings are never returned. Ranking problems are
        absorbed; only store and input errors reach the caller.

        Raises:
            StoreUnavailable: If the store cannot be reached
        """
        kind = _coerce_kind(kind)
        filters = filters or SearchFilters()

        with self.database.session() as session:
            candidates = ListingRepository(session).fetch_eligible_listings(
                kind,
                exclude_owner=caller_id,
                limit=self.app_config.store.candidate_limit,
            )
            profile = UserRepository(session).fetch_owner(caller_id) if caller_id else None

        candidates = [listing for listing in candidates if filters.accepts(listing)]
        outcome = self.orchestrator.rank(query, candidates, profile, kind)

        logger.info(
            f"Search returned {len(outcome.results)} results",
            extra={
                "event": "search.completed",
                "kind": kind.value,
                "candidates": len(candidates),
                "results": len(outcome.results),
                "backend": outcome.backend,
                "degraded": outcome.degraded,
            },
        )
        return outcome

    def save_search(
        self, owner_id: str, draft: Union[SavedQueryDraft, Mapping[str, Any]]
    ) -> SavedQuery:
        return self.registry.create(owner_id, draft)

    def list_saved_searches(self, owner_id: str, include_inactive: bool = False) -> List[SavedQuery]:
        return self.registry.list(owner_id, include_inactive)

    def deactivate_saved_search(self, owner_id: str, saved_query_id: str) -> SavedQuery:
        return self.registry.deactivate(owner_id, saved_query_id)

    def run_saved_search(self, owner_id: str, saved_query_id: str) -> List[MatchResult]:
        """Evaluate a saved search right now, without touching its cursor.

        Listings are filtered with the same predicate the sweep uses, then
        ordered by the saved free-text query (or its skills). A saved search
        with neither lists matches newest first.

        Raises:
            SavedQueryNotFoundError: If missing or owned by someone else
            StoreUnavailable: If the store cannot be reached
        """
        saved_query = self.registry.get(owner_id, saved_query_id)

        with self.database.session() as session:
            candidates = ListingRepository(session).fetch_eligible_listings(
                saved_query.kind, exclude_owner=owner_id, limit=None
            )
            profile = UserRepository(session).fetch_owner(owner_id)

        matches = [listing for listing in candidates if evaluate_predicate(saved_query, listing)]
        ranking_text = saved_query.query or " ".join(saved_query.skills)

        if ranking_text:
            results = self.orchestrator.rank(ranking_text, matches, profile, saved_query.kind).results
        else:
            top_k = self.app_config.matching.lexical.top_k
            results = [
                MatchResult(listing=listing, score=1.0, reasons=[SAVED_FILTER_REASON])
                for listing in matches[:top_k]
            ]

        logger.info(
            f"Saved search {saved_query_id} returned {len(results)} results",
            extra={
                "event": "saved_search.run",
                "saved_query_id": saved_query_id,
                "matched": len(matches),
                "results": len(results),
            },
        )
        return results

    def sweep_alerts(self) -> SweepSummary:
        return self.sweeper.sweep()

    def queue_expiry_notices(self, window_days: Optional[int] = None) -> ExpirySweepSummary:
        return self.sweeper.sweep_expiring_listings(window_days)

    def dispatch_notifications(self, limit: Optional[int] = None) -> DeliveryReport:
        """Deliver pending notifications.

        Raises:
            ConfigurationError: If no delivery transport is configured
        """
        if self.dispatcher is None:
            raise ConfigurationError(
                "Notification delivery is not configured",
                errors=["No delivery transport available"],
                suggestions=["Set SMTP_HOST, SMTP_PORT and SMTP_SENDER_EMAIL in .env"],
            )
        return self.dispatcher.drain_pending(limit)


def build_service(
    app_config: AppConfig,
    env_config: EnvironmentConfig,
    database: Optional[Database] = None,
    transport: Optional[DeliveryTransport] = None,
) -> MarketplaceService:
    """Assemble a MarketplaceService from configuration.

    An SMTP transport is created when SMTP settings are present and no
    transport is passed in; without either, dispatching is unavailable.
    """
    database = database or Database(env_config.database_url)

    orchestrator = build_orchestrator(
        app_config.ranking,
        LexicalScorer(app_config.matching.lexical),
        api_key=env_config.anthropic_api_key,
    )

    if transport is None and env_config.smtp_configured:
        transport = SMTPTransport(env_config, app_config.email)

    dispatcher = None
    if transport is not None:
        dispatcher = NotificationDispatcher(
            database,
            transport,
            dispatch_config=app_config.dispatch,
            email_config=app_config.email,
            template_renderer=TemplateRenderer(),
        )

    return MarketplaceService(database, orchestrator, app_config, dispatcher=dispatcher)
