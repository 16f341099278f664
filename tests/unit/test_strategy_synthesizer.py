"""Unit tests for strategy synthesis."""

import json

import pytest

from fakes import STRATEGY_TEXT, FakeTextClient
from models.analysis import STRATEGY_HEADINGS, AnalyzedVideo
from services.errors import UpstreamUnavailableError
from services.strategy_synthesizer import (
    StrategySynthesizer,
    parse_strategy,
    project_analyzed_video,
    project_record,
)


class FailingStore:
    """Store double whose strategy write always fails."""

    def __init__(self):
        self.attempts = 0

    async def save_strategy(self, strategy, owner_id=None, business_context=None):
        self.attempts += 1
        raise RuntimeError("disk full")


class TestParseStrategy:
    def test_all_seven_headings(self):
        strategy = parse_strategy(STRATEGY_TEXT)

        assert strategy.sections_parsed
        assert strategy.observations.startswith("Short recipe videos")
        assert strategy.sample_script.startswith("Hook:")
        assert strategy.content_themes == [
            "Meal prep in under 10 minutes",
            "Behind the counter",
            "Customer reactions",
        ]
        assert strategy.posting_frequency == "Four times a week, lunchtime and early evening."
        assert all(strategy.section_dict()[attr] for attr in STRATEGY_HEADINGS.values())

    def test_raw_content_is_verbatim(self):
        assert parse_strategy(STRATEGY_TEXT).raw_content == STRATEGY_TEXT

    def test_no_headings_goes_to_observations(self):
        text = "Post daily. Use trending sounds. Show your food."

        strategy = parse_strategy(text)

        assert not strategy.sections_parsed
        assert strategy.observations == text
        assert strategy.key_takeaways == ""
        assert strategy.content_themes == []
        assert strategy.raw_content == text

    def test_partial_headings(self):
        strategy = parse_strategy("Observations:\nA\nPosting Frequency:\nDaily")
        assert strategy.sections_parsed
        assert strategy.observations == "A"
        assert strategy.posting_frequency == "Daily"
        assert strategy.sample_script == ""


class TestProjection:
    def test_analyzed_video_projection_hides_transcript(self, sample_staged, sample_analysis):
        sample_analysis.transcript = "secret words"
        projected = project_analyzed_video(AnalyzedVideo(sample_staged, sample_analysis))

        assert projected == {
            "search_query": "healthy meal prep",
            "url": sample_staged.original_url,
            "title": sample_staged.caption,
            "description": sample_analysis.summary,
        }

    @pytest.mark.parametrize(
        "summary",
        [
            {"summary": "bowl video"},
            json.dumps({"summary": "bowl video", "hooks": []}),
            "bowl video",
        ],
    )
    def test_record_summary_shapes(self, summary):
        record = {"video_url": "https://t/1", "caption": "c", "summary": summary, "search_query": "q"}
        assert project_record(record) == {
            "search_query": "q",
            "url": "https://t/1",
            "title": "c",
            "description": "bowl video",
        }


class TestStrategySynthesizer:
    @pytest.mark.asyncio
    async def test_synthesize_uses_projection_in_prompt(self, sample_staged, sample_analysis):
        client = FakeTextClient(STRATEGY_TEXT)
        synthesizer = StrategySynthesizer(client)

        strategy = await synthesizer.synthesize(
            [AnalyzedVideo(sample_staged, sample_analysis)], "healthy restaurant"
        )

        assert strategy.video_count == 1
        prompt = client.calls[0]["prompt"]
        assert "healthy restaurant" in prompt
        assert sample_analysis.summary in prompt
        assert sample_staged.storage_url not in prompt
        for heading in STRATEGY_HEADINGS:
            assert f"## {heading}" in prompt

    @pytest.mark.asyncio
    async def test_persistence_failure_still_returns_strategy(self):
        store = FailingStore()
        synthesizer = StrategySynthesizer(FakeTextClient(STRATEGY_TEXT), store=store)

        strategy = await synthesizer.summarize(
            [{"summary": "s", "caption": "c"}], "bakery", owner_id="auth-1"
        )

        assert store.attempts == 1
        assert strategy.sections_parsed
        assert strategy.strategy_id is None

    @pytest.mark.asyncio
    async def test_no_owner_skips_persistence(self):
        store = FailingStore()
        synthesizer = StrategySynthesizer(FakeTextClient(STRATEGY_TEXT), store=store)

        await synthesizer.summarize([{"summary": "s"}], "bakery")

        assert store.attempts == 0

    @pytest.mark.asyncio
    async def test_persists_with_owner(self, trend_store):
        synthesizer = StrategySynthesizer(FakeTextClient(STRATEGY_TEXT), store=trend_store)

        strategy = await synthesizer.summarize([{"summary": "s"}], "bakery", owner_id="auth-1")

        rows = await trend_store.list_strategies("auth-1")
        assert [r["id"] for r in rows] == [strategy.strategy_id]

    @pytest.mark.asyncio
    async def test_summarize_rejects_empty_list(self):
        synthesizer = StrategySynthesizer(FakeTextClient(STRATEGY_TEXT))
        with pytest.raises(ValueError):
            await synthesizer.summarize([], "bakery")

    @pytest.mark.asyncio
    async def test_model_failure_propagates(self):
        synthesizer = StrategySynthesizer(
            FakeTextClient(UpstreamUnavailableError("openrouter", "HTTP 401"))
        )
        with pytest.raises(UpstreamUnavailableError):
            await synthesizer.summarize([{"summary": "s"}], "bakery")
