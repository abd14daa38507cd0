"""Unit tests for model-backed ranking and the orchestrator fallback."""

import json
from datetime import timedelta
from unittest.mock import Mock

import pytest
import requests

from gigmatch.config.models import RankingConfig
from gigmatch.domain.models import ListingKind, UserProfile
from gigmatch.matching import (
    CandidateScorer,
    LexicalRanker,
    LexicalScorer,
    ModelMalformed,
    ModelRanker,
    ModelUnavailable,
    RankingOrchestrator,
    build_orchestrator,
)
from gigmatch.matching.prompt import build_candidate_context, build_ranking_prompt
from gigmatch.matching.ranking import parse_model_answer
from tests.helpers import make_listing
from tests.helpers.factories import BASE_TIME


def model_response(answer, status_code=200):
    """Build a fake requests.Response carrying ``answer`` as the model text."""
    response = Mock()
    response.status_code = status_code
    response.reason = "OK" if status_code == 200 else "Error"
    text = answer if isinstance(answer, str) else json.dumps(answer)
    response.json.return_value = {"content": [{"type": "text", "text": text}]}
    return response


@pytest.fixture
def listings():
    return [
        make_listing("a", title="Senior React Developer", created_at=BASE_TIME),
        make_listing("b", title="Vue Engineer", skills=["vue"], created_at=BASE_TIME - timedelta(days=1)),
        make_listing("c", title="Data Analyst", skills=["sql"], created_at=BASE_TIME - timedelta(days=2)),
    ]


@pytest.fixture
def session():
    return Mock(spec=requests.Session, headers={})


@pytest.fixture
def ranker(session):
    return ModelRanker(RankingConfig(), "sk-test", session=session)


class TestPrompt:
    """Tests for the bounded candidate context and prompt text."""

    def test_candidate_context_fields(self):
        listing = make_listing(
            description="x" * 800,
            owner=UserProfile(id="owner-1", name="Dana", headline="CTO at Acme"),
        )

        context = build_candidate_context([listing], description_chars=500)[0]

        assert context["index"] == 0
        assert len(context["description"]) == 500
        assert context["rate"] == "$70-90"
        assert context["poster"] == "Dana"
        assert context["headline"] == "CTO at Acme"

    def test_rate_without_bounds_is_negotiable(self):
        context = build_candidate_context([make_listing(rate_min=None, rate_max=None)])[0]
        assert context["rate"] == "negotiable"

    def test_prompt_wording_by_kind(self, listings):
        jobs = build_ranking_prompt("react", listings, kind=ListingKind.SEEKING_HELP)
        talent = build_ranking_prompt("react", listings, kind=ListingKind.SEEKING_WORK)

        assert "A user is searching for job opportunities." in jobs
        assert "A user is searching for freelancers to hire." in talent
        assert "Only include listings with score > 0.3" in jobs
        assert "Limit to top 10" in jobs

    def test_prompt_includes_searcher_headline(self, listings):
        profile = UserProfile(id="u1", name="Sam", headline="Frontend lead")
        prompt = build_ranking_prompt("react", listings, searcher_profile=profile)
        assert "User's headline: Frontend lead" in prompt


class TestParseModelAnswer:
    """Tests for answer parsing."""

    def test_plain_json(self):
        matches = parse_model_answer('{"matches": [{"index": 1, "score": 0.8, "reasons": ["a"]}]}')
        assert [(m.index, m.score, m.reasons) for m in matches] == [(1, 0.8, ["a"])]

    def test_code_fenced_json(self):
        matches = parse_model_answer('```json\n{"matches": [{"index": 0, "score": 0.5}]}\n```')
        assert matches[0].index == 0

    def test_json_inside_prose(self):
        matches = parse_model_answer('Here you go: {"matches": []} Hope it helps')
        assert matches == []

    def test_score_is_clamped(self):
        matches = parse_model_answer('{"matches": [{"index": 0, "score": 1.7}]}')
        assert matches[0].score == 1.0

    def test_invalid_items_are_skipped(self):
        matches = parse_model_answer(
            '{"matches": [{"index": "first", "score": 0.9}, {"index": 2, "score": 0.6}]}'
        )
        assert [m.index for m in matches] == [2]

    def test_non_finite_scores_are_skipped(self):
        matches = parse_model_answer(
            '{"matches": [{"index": 0, "score": 0.9}, {"index": 1, "score": NaN}, '
            '{"index": 2, "score": Infinity}]}'
        )
        assert [m.index for m in matches] == [0]

    def test_missing_matches_list(self):
        with pytest.raises(ModelMalformed):
            parse_model_answer('{"results": []}')

    def test_not_json(self):
        with pytest.raises(ModelMalformed):
            parse_model_answer("I could not rank these listings.")


class TestModelRanker:
    """Tests for the HTTP-backed ranker."""

    def test_is_a_candidate_scorer(self, ranker):
        assert isinstance(ranker, CandidateScorer)

    def test_request_shape(self, ranker, session, listings):
        session.post.return_value = model_response({"matches": []})

        ranker.score_candidates("react developer", listings)

        args, kwargs = session.post.call_args
        assert args[0] == "https://api.anthropic.com/v1/messages"
        assert kwargs["headers"]["x-api-key"] == "sk-test"
        assert kwargs["headers"]["anthropic-version"] == "2023-06-01"
        assert kwargs["json"]["model"] == "claude-3-haiku-20240307"
        assert kwargs["json"]["max_tokens"] == 2000
        assert kwargs["timeout"] == 30

    def test_maps_indices_filters_and_sorts(self, ranker, session, listings):
        session.post.return_value = model_response(
            {
                "matches": [
                    {"index": 2, "score": 0.6, "reasons": ["SQL overlap"]},
                    {"index": 0, "score": 0.9, "reasons": ["React match"]},
                    {"index": 1, "score": 0.3, "reasons": ["too weak"]},
                    {"index": 7, "score": 0.95, "reasons": ["no such listing"]},
                    {"index": 0, "score": 0.4, "reasons": ["duplicate"]},
                ]
            }
        )

        results = ranker.score_candidates("react developer", listings)

        assert [(r.listing.id, r.score) for r in results] == [("a", 0.9), ("c", 0.6)]
        assert results[0].reasons == ["React match"]

    def test_equal_scores_prefer_newer_listing(self, ranker, session, listings):
        session.post.return_value = model_response(
            {"matches": [{"index": 2, "score": 0.8}, {"index": 1, "score": 0.8}]}
        )

        results = ranker.score_candidates("engineer", listings)

        assert [r.listing.id for r in results] == ["b", "c"]

    def test_nan_score_drops_only_that_item(self, ranker, session, listings):
        session.post.return_value = model_response(
            {"matches": [{"index": 0, "score": 0.9}, {"index": 1, "score": float("nan")}]}
        )

        results = ranker.score_candidates("react developer", listings)

        assert [(r.listing.id, r.score) for r in results] == [("a", 0.9)]

    def test_zero_matches_is_valid(self, ranker, session, listings):
        session.post.return_value = model_response({"matches": []})
        assert ranker.score_candidates("react", listings) == []

    def test_non_2xx_raises_unavailable(self, ranker, session, listings):
        session.post.return_value = model_response({}, status_code=529)

        with pytest.raises(ModelUnavailable) as exc_info:
            ranker.score_candidates("react", listings)

        assert exc_info.value.status_code == 529

    def test_timeout_raises_unavailable(self, ranker, session, listings):
        session.post.side_effect = requests.exceptions.Timeout("slow")

        with pytest.raises(ModelUnavailable, match="timed out"):
            ranker.score_candidates("react", listings)

    def test_connection_error_raises_unavailable(self, ranker, session, listings):
        session.post.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(ModelUnavailable):
            ranker.score_candidates("react", listings)

    def test_body_without_text_raises_malformed(self, ranker, session, listings):
        response = model_response({})
        response.json.return_value = {"content": []}
        session.post.return_value = response

        with pytest.raises(ModelMalformed):
            ranker.score_candidates("react", listings)

    def test_non_json_body_raises_malformed(self, ranker, session, listings):
        response = model_response({})
        response.json.side_effect = ValueError("Expecting value")
        session.post.return_value = response

        with pytest.raises(ModelMalformed):
            ranker.score_candidates("react", listings)

    def test_empty_api_key_rejected(self, session):
        with pytest.raises(ValueError):
            ModelRanker(RankingConfig(), "  ", session=session)


class TestRankingOrchestrator:
    """Tests for backend selection and lexical fallback."""

    def test_lexical_only_without_model(self, listings):
        outcome = RankingOrchestrator().rank("react developer", listings)

        assert outcome.backend == "lexical"
        assert outcome.degraded is False
        assert outcome.results[0].listing.id == "a"

    def test_model_results_are_returned(self, listings):
        model = Mock()
        model.name = "model"
        model.score_candidates.return_value = []

        outcome = RankingOrchestrator(model=model).rank("react", listings)

        assert outcome.backend == "model"
        assert outcome.results == []
        assert outcome.degraded is False

    @pytest.mark.parametrize(
        "error",
        [ModelUnavailable("HTTP 503"), ModelMalformed("bad json"), RuntimeError("boom")],
    )
    def test_any_failure_falls_back_to_lexical(self, listings, error):
        model = Mock()
        model.name = "model"
        model.score_candidates.side_effect = error

        outcome = RankingOrchestrator(model=model).rank("react developer", listings)
        expected = LexicalScorer().score("react developer", listings)

        assert outcome.degraded is True
        assert outcome.backend == "lexical"
        assert [(r.listing.id, r.score) for r in outcome.results] == [
            (r.listing.id, r.score) for r in expected
        ]

    def test_empty_candidates_never_reach_model(self):
        model = Mock()
        model.name = "model"

        outcome = RankingOrchestrator(model=model).rank("react", [])

        model.score_candidates.assert_not_called()
        assert outcome.results == []
        assert outcome.degraded is False

    def test_build_orchestrator_without_key_is_lexical(self):
        orchestrator = build_orchestrator(RankingConfig(), LexicalScorer(), api_key=None)
        assert orchestrator.model is None
        assert isinstance(orchestrator.lexical, LexicalRanker)

    def test_build_orchestrator_respects_disabled(self, session):
        orchestrator = build_orchestrator(
            RankingConfig(enabled=False), LexicalScorer(), api_key="sk-test", session=session
        )
        assert orchestrator.model is None

    def test_build_orchestrator_with_key(self, session):
        orchestrator = build_orchestrator(
            RankingConfig(), LexicalScorer(), api_key="sk-test", session=session
        )
        assert isinstance(orchestrator.model, ModelRanker)
