"""Analysis and strategy data models."""

from dataclasses import asdict, dataclass, field
from typing import Any, Optional

# Keys the multimodal model is asked to return, mapped to VideoAnalysis fields
ANALYSIS_KEYS = {
    "summary": "summary",
    "hooks": "hooks",
    "ctas": "calls_to_action",
    "content_style": "content_style",
    "success_factors": "success_factors",
    "transcript": "transcript",
}

# Headings the strategy prompt asks for, in order, mapped to Strategy fields
STRATEGY_HEADINGS = {
    "Observations": "observations",
    "Key Takeaways": "key_takeaways",
    "Sample Script": "sample_script",
    "Technical Specs": "technical_specs",
    "Content Themes": "content_themes",
    "Hashtag Strategy": "hashtag_strategy",
    "Posting Frequency": "posting_frequency",
}


@dataclass
class VideoAnalysis:
    """Marketing analysis of one staged video."""

    summary: str
    hooks: list[str] = field(default_factory=list)
    calls_to_action: list[str] = field(default_factory=list)
    content_style: str = ""
    success_factors: list[str] = field(default_factory=list)
    transcript: str = ""

    @classmethod
    def from_payload(cls, payload: Any) -> "VideoAnalysis":
        """Validate a decoded model payload into an analysis.

        Lists given as a single string become one-element lists, non-string
        scalars are stringified. A payload that is not an object, or that has
        no usable summary, is rejected.

        Raises:
            ValueError: If the payload does not fit the analysis schema
        """
        if not isinstance(payload, dict):
            raise ValueError(f"analysis payload must be an object, got {type(payload).__name__}")

        summary = _as_text(payload.get("summary"))
        if not summary:
            raise ValueError("analysis payload has no summary")

        return cls(
            summary=summary,
            hooks=_as_text_list(payload.get("hooks")),
            calls_to_action=_as_text_list(payload.get("ctas", payload.get("calls_to_action"))),
            content_style=_as_text(payload.get("content_style")),
            success_factors=_as_text_list(payload.get("success_factors")),
            transcript=_as_text(payload.get("transcript")),
        )

    def to_payload(self) -> dict:
        """Serialize using the model-facing key names."""
        return {key: getattr(self, attr) for key, attr in ANALYSIS_KEYS.items()}


@dataclass
class AnalyzedVideo:
    """A staged video paired with its accepted analysis."""

    video: Any  # StagedVideo
    analysis: VideoAnalysis
    analysis_id: Optional[str] = None


@dataclass
class Strategy:
    """Marketing strategy synthesized from a batch of analyses.

    raw_content always carries the full model text. sections_parsed is False
    when none of the known headings were found and the whole text landed in
    observations.
    """

    raw_content: str
    observations: str = ""
    key_takeaways: str = ""
    sample_script: str = ""
    technical_specs: str = ""
    content_themes: list[str] = field(default_factory=list)
    hashtag_strategy: str = ""
    posting_frequency: str = ""
    sections_parsed: bool = False
    video_count: int = 0
    strategy_id: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    def section_dict(self) -> dict:
        """Only the structured sections, keyed by field name."""
        return {attr: getattr(self, attr) for attr in STRATEGY_HEADINGS.values()}


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, tuple)):
        return "\n".join(_as_text(v) for v in value if v is not None).strip()
    return str(value).strip()


def _as_text_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [text for text in (_as_text(v) for v in value) if text]
    if isinstance(value, dict):
        return [text for text in (_as_text(v) for v in value.values()) if text]
    return [str(value)]
