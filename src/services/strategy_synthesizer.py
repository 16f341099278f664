"""Marketing strategy synthesis over a batch of analyzed videos."""

import json
import logging
from typing import Any, Optional

from models.analysis import STRATEGY_HEADINGS, AnalyzedVideo, Strategy
from services.model_clients import TextModelClient
from services.response_normalizer import extract_sections, split_list_items

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a TikTok marketing strategist. You write practical, specific "
    "strategies under the exact section headings you are given."
)


def project_analyzed_video(item: AnalyzedVideo) -> dict:
    """Reduce an analyzed video to the fields the strategy prompt sees.

    Transcripts and media URLs of the stored copy never enter the prompt.
    """
    video = item.video
    return {
        "search_query": video.search_query,
        "url": video.original_url,
        "title": video.caption,
        "description": item.analysis.summary,
    }


def project_record(record: dict) -> dict:
    """Same projection for a caller-supplied analyzed video dict.

    ``summary`` may be an analysis object, a JSON string of one, or plain text.
    """
    summary = record.get("summary")
    if isinstance(summary, str):
        try:
            parsed = json.loads(summary)
            summary = parsed if isinstance(parsed, dict) else summary
        except json.JSONDecodeError:
            pass
    if isinstance(summary, dict):
        description = summary.get("summary") or ""
    else:
        description = summary or record.get("description") or ""

    return {
        "search_query": record.get("search_query") or record.get("searchQuery") or "",
        "url": record.get("video_url") or record.get("url") or record.get("videoUrl") or "",
        "title": record.get("caption") or record.get("title") or "",
        "description": str(description),
    }


class StrategySynthesizer:
    """Builds one Strategy from many video analyses."""

    def __init__(self, text_client: TextModelClient, store=None):
        """Initialize synthesizer.

        Args:
            text_client: Text model client
            store: Optional TrendStore used when an owner id is supplied
        """
        self.text_client = text_client
        self.store = store

    def build_prompt(self, projected: list[dict], business_context: str) -> str:
        headings = "\n".join(f"## {heading}" for heading in STRATEGY_HEADINGS)
        return f"""I have analyzed {len(projected)} trending TikTok videos for a {business_context} business.

VIDEOS
{json.dumps(projected, indent=2, ensure_ascii=False)}

TASK
Write a TikTok content strategy for this business based on what these videos do well.

FORMAT
Use exactly these headings, in this order, each on its own line:
{headings}

Under "Content Themes" list one theme per line as a bullet.
Under "Sample Script" write one complete short video script.
Under "Technical Specs" cover length, aspect ratio, pacing and audio.
Plain text under each heading. No JSON."""

    async def synthesize(
        self,
        analyzed_videos: list[AnalyzedVideo],
        business_context: str,
        owner_id: Optional[str] = None,
    ) -> Strategy:
        """Synthesize a strategy from analyzed videos.

        Raises:
            UpstreamUnavailableError: If the text model cannot be reached
        """
        projected = [project_analyzed_video(item) for item in analyzed_videos]
        return await self._synthesize_projected(projected, business_context, owner_id)

    async def summarize(
        self,
        records: list[dict[str, Any]],
        business_context: str,
        owner_id: Optional[str] = None,
    ) -> Strategy:
        """Synthesize a strategy from caller-supplied analyzed video records.

        Raises:
            ValueError: If ``records`` is empty
            UpstreamUnavailableError: If the text model cannot be reached
        """
        if not records:
            raise ValueError("Analyzed videos are required and must be a non-empty list")
        projected = [project_record(record) for record in records]
        return await self._synthesize_projected(projected, business_context, owner_id)

    async def _synthesize_projected(
        self, projected: list[dict], business_context: str, owner_id: Optional[str]
    ) -> Strategy:
        logger.info(f"Synthesizing strategy from {len(projected)} videos")
        raw = await self.text_client.complete(
            self.build_prompt(projected, business_context),
            system=SYSTEM_PROMPT,
            temperature=0.7,
        )

        strategy = parse_strategy(raw)
        strategy.video_count = len(projected)

        if owner_id and self.store is not None:
            try:
                await self.store.save_strategy(strategy, owner_id, business_context)
                logger.info(f"Saved strategy {strategy.strategy_id} for owner {owner_id}")
            except Exception as e:
                # The strategy is still returned to the caller
                logger.error(f"Failed to save strategy for owner {owner_id}: {e}")

        return strategy


def parse_strategy(raw_text: str) -> Strategy:
    """Split heading-delimited model text into a Strategy."""
    sections, matched = extract_sections(raw_text, list(STRATEGY_HEADINGS))
    if matched < len(STRATEGY_HEADINGS):
        logger.info(f"Strategy response matched {matched}/{len(STRATEGY_HEADINGS)} headings")

    fields = {STRATEGY_HEADINGS[heading]: body for heading, body in sections.items()}
    fields["content_themes"] = split_list_items(fields["content_themes"])

    return Strategy(raw_content=raw_text or "", sections_parsed=matched > 0, **fields)
