"""Multimodal marketing analysis of staged videos."""

import json
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from models.analysis import VideoAnalysis
from models.video import StagedVideo
from services.errors import MalformedResponseError
from services.model_clients import DashScopeClient
from services.response_normalizer import ObjectShape, extract_structured

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert at analyzing TikTok marketing strategies. Your task is to "
    "analyze the provided video and extract key marketing elements that make it "
    "successful. You must return your analysis in a valid JSON format."
)

OUTPUT_SCHEMA = {
    "summary": "A concise, one-paragraph summary of the video's content and marketing angle.",
    "hooks": [
        "Specific hooks used in the first 3 seconds to grab attention. "
        "E.g., 'Uses a controversial statement', 'Starts with a surprising visual'."
    ],
    "ctas": [
        "Calls-to-action in the video. E.g., 'Asks users to comment', 'Points to a link in bio'."
    ],
    "content_style": (
        "The content style. E.g., 'Fast-paced editing with trending audio', "
        "'User-generated content style', 'Educational tutorial'."
    ),
    "success_factors": [
        "Key reasons why this video is successful. E.g., 'Relatable humor', "
        "'Addresses a common pain point', 'High production quality'."
    ],
    "transcript": "A full transcript of the spoken words. If no speech, return an empty string.",
}


@dataclass
class AnalysisStreamEvent:
    """One item of a streamed analysis: a text chunk or the final result."""

    kind: str  # "chunk" or "complete"
    text: str = ""
    analysis: Optional[VideoAnalysis] = None


def parse_analysis(raw_text: str) -> VideoAnalysis:
    """Parse model output into a validated analysis.

    Raises:
        MalformedResponseError: If no JSON object is found or it fails validation
    """
    result = extract_structured(raw_text, ObjectShape())
    if result.value is None:
        raise MalformedResponseError("No JSON object found in analysis response", raw_text)
    try:
        return VideoAnalysis.from_payload(result.value)
    except ValueError as e:
        raise MalformedResponseError(f"Invalid analysis payload: {e}", raw_text) from e


class VideoAnalyzer:
    """Sends staged videos to the multimodal model and validates the answer."""

    def __init__(
        self,
        client: DashScopeClient,
        fps: int = 1,
        window_seconds: int = 60,
    ):
        """Initialize analyzer.

        Args:
            client: Multimodal model client
            fps: Frames per second sampled from the video
            window_seconds: Only the first ``window_seconds`` are analyzed
        """
        self.client = client
        self.fps = fps
        self.window_seconds = window_seconds

    def build_prompt(self, video: StagedVideo, business_context: Optional[str] = None) -> str:
        engagement = video.engagement
        context_line = ""
        if business_context:
            context_line = f"\nThe analysis is for a {business_context} business; note what it could borrow.\n"

        return f"""
Analyze this TikTok video and provide a detailed marketing analysis. The video has {engagement.likes} likes, {engagement.comments} comments, {engagement.shares} shares and {engagement.views} views. The caption is: "{video.caption}".
{context_line}
Your response MUST be a valid JSON object with the following structure:
{json.dumps(OUTPUT_SCHEMA, indent=2)}
"""

    def build_messages(
        self, video: StagedVideo, business_context: Optional[str] = None
    ) -> list[dict]:
        return [
            {"role": "system", "content": [{"text": SYSTEM_PROMPT}]},
            {
                "role": "user",
                "content": [
                    {
                        "video": video.storage_url,
                        "fps": self.fps,
                        "start_time": 0,
                        "end_time": self.window_seconds,
                    },
                    {"text": self.build_prompt(video, business_context)},
                ],
            },
        ]

    async def analyze(
        self, video: StagedVideo, business_context: Optional[str] = None
    ) -> VideoAnalysis:
        """Analyze one staged video.

        Raises:
            UpstreamUnavailableError: If the model provider fails
            MalformedResponseError: If the answer has no valid analysis JSON
        """
        logger.info(f"Analyzing video {video.platform_id} at {video.storage_url}")
        raw = await self.client.generate(self.build_messages(video, business_context))

        try:
            analysis = parse_analysis(raw)
        except MalformedResponseError:
            logger.error(f"Malformed analysis for {video.platform_id}: {raw[:300]!r}")
            raise

        logger.info(f"Analysis complete for {video.platform_id}")
        return analysis

    async def analyze_stream(
        self, video: StagedVideo, business_context: Optional[str] = None
    ) -> AsyncIterator[AnalysisStreamEvent]:
        """Stream an analysis: text chunks as they arrive, then the parsed result.

        Raises:
            UpstreamUnavailableError: If the stream cannot be opened or breaks
            MalformedResponseError: If the accumulated text is not a valid analysis
        """
        chunks: list[str] = []
        async for chunk in self.client.stream(self.build_messages(video, business_context)):
            chunks.append(chunk)
            yield AnalysisStreamEvent(kind="chunk", text=chunk)

        analysis = parse_analysis("".join(chunks))
        yield AnalysisStreamEvent(kind="complete", analysis=analysis)
