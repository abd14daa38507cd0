"""Ranking orchestration: model-backed ranking with a lexical fallback.

Backends implement the ``CandidateScorer`` protocol. ``RankingOrchestrator``
tries the model backend when one is configured and lands on the lexical
scorer on any failure, so ``rank`` never raises.
"""

import json
import math
import re
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

import requests
from pydantic import BaseModel, Field, ValidationError, field_validator

from gigmatch.config.models import RankingConfig
from gigmatch.domain.models import Listing, ListingKind, MatchResult, RankingOutcome, UserProfile
from gigmatch.logging import get_logger

from .exceptions import ModelMalformed, ModelUnavailable, RankingError
from .lexical import LexicalScorer
from .prompt import build_ranking_prompt

logger = get_logger(__name__, component="ranking")

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


@runtime_checkable
class CandidateScorer(Protocol):
    """Interface shared by all ranking backends."""

    name: str

    def score_candidates(
        self,
        query: str,
        listings: Sequence[Listing],
        searcher_profile: Optional[UserProfile] = None,
        kind: Optional[ListingKind] = None,
    ) -> List[MatchResult]:
        """Return ordered match results for the candidates."""
        ...


class LexicalRanker:
    """Lexical scorer behind the ranking interface."""

    name = "lexical"

    def __init__(self, scorer: Optional[LexicalScorer] = None):
        self.scorer = scorer or LexicalScorer()

    def score_candidates(
        self,
        query: str,
        listings: Sequence[Listing],
        searcher_profile: Optional[UserProfile] = None,
        kind: Optional[ListingKind] = None,
    ) -> List[MatchResult]:
        return self.scorer.score(query, listings)


class ModelMatch(BaseModel):
    """One item of the model's answer."""

    index: int
    score: float
    reasons: List[str] = Field(default_factory=list)

    @field_validator("score")
    @classmethod
    def clamp_score(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("score must be a finite number")
        return min(max(v, 0.0), 1.0)

    @field_validator("reasons", mode="before")
    @classmethod
    def coerce_reasons(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        return [str(reason).strip() for reason in v if str(reason).strip()]


class ModelRanker:
    """Ranks candidates with one call to a messages-style model endpoint.

    A single attempt is made with a bounded token budget and timeout.

    Raises from ``score_candidates``:
        ModelUnavailable: Non-2xx status, timeout or connection failure
        ModelMalformed: Body or answer text not in the expected structure
    """

    name = "model"

    def __init__(
        self,
        config: RankingConfig,
        api_key: str,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not api_key or not api_key.strip():
            raise ValueError("api_key cannot be empty")

        self.config = config
        self._api_key = api_key.strip()
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": config.user_agent})

    def score_candidates(
        self,
        query: str,
        listings: Sequence[Listing],
        searcher_profile: Optional[UserProfile] = None,
        kind: Optional[ListingKind] = None,
    ) -> List[MatchResult]:
        prompt = build_ranking_prompt(
            query,
            listings,
            searcher_profile=searcher_profile,
            kind=kind,
            description_chars=self.config.description_chars,
            min_score=self.config.min_score,
            top_k=self.config.top_k,
        )
        body = self._post(prompt)
        matches = parse_model_answer(extract_answer_text(body))
        return self._select(matches, listings)

    def _post(self, prompt: str) -> Dict[str, Any]:
        url = self.config.api_url
        headers = {
            "Content-Type": "application/json",
            "x-api-key": self._api_key,
            "anthropic-version": self.config.api_version,
        }
        payload = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }

        logger.debug(
            f"HTTP POST request to {url}",
            extra={
                "event": "ranking.model.request",
                "url": url,
                "model": self.config.model,
                "timeout": self.config.timeout_seconds,
            },
        )

        try:
            response = self._session.post(
                url, headers=headers, json=payload, timeout=self.config.timeout_seconds
            )
        except requests.exceptions.Timeout as e:
            raise ModelUnavailable(
                f"Ranking request timed out after {self.config.timeout_seconds} seconds"
            ) from e
        except requests.exceptions.RequestException as e:
            raise ModelUnavailable(f"Ranking request failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise ModelUnavailable(
                f"HTTP {response.status_code}: {response.reason}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise ModelMalformed(f"Ranking response is not JSON: {e}") from e

        if not isinstance(body, dict):
            raise ModelMalformed("Ranking response is not a JSON object")
        return body

    def _select(self, matches: List[ModelMatch], listings: Sequence[Listing]) -> List[MatchResult]:
        """Map indices back to listings, then filter, order and cap."""
        seen = set()
        results = []
        for match in matches:
            if match.index < 0 or match.index >= len(listings) or match.index in seen:
                logger.debug(
                    "Dropping model match with unusable index",
                    extra={"event": "ranking.model.index_dropped", "index": match.index},
                )
                continue
            seen.add(match.index)
            if match.score <= self.config.min_score:
                continue
            results.append(
                MatchResult(listing=listings[match.index], score=match.score, reasons=match.reasons)
            )

        results.sort(key=lambda r: (r.score, r.listing.created_at), reverse=True)
        return results[: self.config.top_k]


def extract_answer_text(body: Dict[str, Any]) -> str:
    """Pull the first text block out of a messages API response.

    Raises:
        ModelMalformed: If there is no text content
    """
    content = body.get("content")
    if not isinstance(content, list):
        raise ModelMalformed("Ranking response has no content list")

    for block in content:
        if isinstance(block, dict) and isinstance(block.get("text"), str):
            return block["text"]

    raise ModelMalformed("Ranking response has no text block")


def parse_model_answer(text: str) -> List[ModelMatch]:
    """Parse ``{"matches": [...]}`` from the model's answer text.

    Code fences and surrounding prose are tolerated. Individual items that
    fail validation are skipped; a missing or non-list ``matches`` is not.

    Raises:
        ModelMalformed: If no JSON object with a ``matches`` list is found
    """
    cleaned = _CODE_FENCE.sub("", text.strip())
    try:
        parsed = json.loads(cleaned)
    except ValueError:
        found = _JSON_OBJECT.search(cleaned)
        if found is None:
            raise ModelMalformed("Ranking answer contains no JSON object")
        try:
            parsed = json.loads(found.group(0))
        except ValueError as e:
            raise ModelMalformed(f"Ranking answer is not valid JSON: {e}") from e

    if not isinstance(parsed, dict) or not isinstance(parsed.get("matches"), list):
        raise ModelMalformed("Ranking answer has no 'matches' list")

    matches = []
    for item in parsed["matches"]:
        try:
            matches.append(ModelMatch.model_validate(item))
        except ValidationError:
            logger.debug(
                "Skipping invalid model match item",
                extra={"event": "ranking.model.item_invalid", "item": str(item)[:200]},
            )
    return matches


class RankingOrchestrator:
    """Produces the final ordered match list for a query.

    ``rank`` never raises: any backend failure degrades to the lexical
    scorer, and the outcome carries a ``degraded`` flag for observability.
    A model answer with zero matches is a valid ranking.
    """

    def __init__(
        self,
        lexical: Optional[LexicalRanker] = None,
        model: Optional[CandidateScorer] = None,
    ):
        self.lexical = lexical or LexicalRanker()
        self.model = model

    @property
    def model_configured(self) -> bool:
        return self.model is not None

    def rank(
        self,
        query: str,
        listings: Sequence[Listing],
        searcher_profile: Optional[UserProfile] = None,
        kind: Optional[ListingKind] = None,
    ) -> RankingOutcome:
        """Rank ``listings`` against ``query``.

        Args:
            query: Searcher's free-text query
            listings: Candidate listings, newest first
            searcher_profile: Searcher's public profile for context
            kind: Kind of listing being searched

        Returns:
            RankingOutcome with results best first
        """
        listings = list(listings)

        if self.model is None or not listings:
            return RankingOutcome(
                results=self.lexical.score_candidates(query, listings, searcher_profile, kind),
                backend=self.lexical.name,
            )

        try:
            results = self.model.score_candidates(query, listings, searcher_profile, kind)
        except RankingError as e:
            return self._fallback(query, listings, searcher_profile, kind, e)
        except Exception as e:
            logger.error(
                f"Unexpected ranking failure: {e}",
                exc_info=True,
                extra={"event": "ranking.model.unexpected_error"},
            )
            return self._fallback(query, listings, searcher_profile, kind, e)

        logger.info(
            "Ranked candidates with model",
            extra={
                "event": "ranking.completed",
                "backend": self.model.name,
                "candidates": len(listings),
                "results": len(results),
            },
        )
        return RankingOutcome(results=results, backend=self.model.name)

    def _fallback(
        self,
        query: str,
        listings: List[Listing],
        searcher_profile: Optional[UserProfile],
        kind: Optional[ListingKind],
        error: Exception,
    ) -> RankingOutcome:
        logger.warning(
            f"Model ranking failed, using lexical fallback: {error}",
            extra={
                "event": "ranking.fallback",
                "error_type": type(error).__name__,
                "candidates": len(listings),
            },
        )
        return RankingOutcome(
            results=self.lexical.score_candidates(query, listings, searcher_profile, kind),
            backend=self.lexical.name,
            degraded=True,
        )


def build_orchestrator(
    ranking_config: RankingConfig,
    lexical_scorer: LexicalScorer,
    api_key: Optional[str] = None,
    session: Optional[requests.Session] = None,
) -> RankingOrchestrator:
    """Wire an orchestrator; the model backend is used only with an API key."""
    model = None
    if ranking_config.enabled and api_key:
        model = ModelRanker(ranking_config, api_key, session=session)

    logger.info(
        "Ranking backend configured",
        extra={
            "event": "ranking.configured",
            "backend": ModelRanker.name if model else LexicalRanker.name,
        },
    )
    return RankingOrchestrator(lexical=LexicalRanker(lexical_scorer), model=model)
