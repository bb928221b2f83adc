import html
import logging
import re
from datetime import datetime, timezone
from typing import List, Optional, Protocol
from pydantic import BaseModel, Field, ValidationError, field_validator
from .llm import build_prompt
from .models import ArtifactSet, AttachmentInfo, GeneratedFile

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^\s*```[a-zA-Z]*\s*\n(.*?)\n?\s*```\s*$", re.DOTALL)

OFFLINE_README_TITLE = "# Auto-generated app"
PARSE_FAILED_NOTE = "(LLM output parse failed)"

class GenerationBackend(Protocol):
    async def complete(self, prompt: str) -> str: ...

def normalize_path(path: str) -> str:
    """Drop leading "/" and "./" segments; raise ValueError for paths that leave the tree."""
    parts = [p for p in path.replace("\\", "/").split("/") if p not in ("", ".")]
    if not parts or ".." in parts or parts[0] == ".git":
        raise ValueError(f"Unsafe artifact path: {path!r}")
    return "/".join(parts)

class _BackendArtifacts(BaseModel):
    files: List[GeneratedFile] = Field(min_length=1)
    readme: Optional[str] = None

    @field_validator("files")
    @classmethod
    def _relative_paths(cls, files):
        return [GeneratedFile(path=normalize_path(f.path), content=f.content) for f in files]

def _page(heading: str, brief: str, note: str, generated_at: str) -> str:
    return (
        '<!doctype html><html><head><meta charset="utf-8"><title>Auto App</title></head><body>'
        f"<h1>{heading}</h1><p>{html.escape(brief)}</p><p>{note}</p>"
        f'<div id="output">Generated at {generated_at}</div>'
        "</body></html>"
    )

def offline_artifacts(brief: str, now: Optional[datetime] = None) -> ArtifactSet:
    """Single-page artifact set used when no generation backend is configured."""
    ts = (now or datetime.now(timezone.utc)).isoformat()
    page = _page("Auto-generated app", brief, "Generated offline (no generation backend configured).", ts)
    return ArtifactSet(
        files=(GeneratedFile(path="index.html", content=page),),
        readme=f"{OFFLINE_README_TITLE}\n\nBrief: {brief}\n\nGenerated at {ts}\n",
    )

def parse_failure_artifacts(brief: str, now: Optional[datetime] = None) -> ArtifactSet:
    """Single-page artifact set used when the backend output is unusable."""
    ts = (now or datetime.now(timezone.utc)).isoformat()
    page = _page("Generated app", brief, "Failed to parse LLM output. See server logs.", ts)
    return ArtifactSet(
        files=(GeneratedFile(path="index.html", content=page),),
        readme=f"# Auto app\n\n{PARSE_FAILED_NOTE}\n\nBrief: {brief}\n\nGenerated at {ts}\n",
    )

def parse_artifacts(text: str, brief: str) -> ArtifactSet:
    """Parse backend output into an ArtifactSet.

    Accepts the bare JSON object or one wrapped in a single markdown code fence.
    Raises ValueError (pydantic's ValidationError included) on anything else.
    """
    m = _FENCE_RE.match(text or "")
    if m:
        text = m.group(1)
    parsed = _BackendArtifacts.model_validate_json(text or "")
    readme = parsed.readme or f"{OFFLINE_README_TITLE}\n\n{brief}"
    return ArtifactSet(files=tuple(parsed.files), readme=readme)

class ArtifactGenerator:
    def __init__(self, backend: Optional[GenerationBackend] = None):
        self.backend = backend

    async def generate(self, brief: str, attachments: List[AttachmentInfo]) -> ArtifactSet:
        if self.backend is None:
            logger.info("[GENERATE] No generation backend configured, using offline fallback")
            return offline_artifacts(brief)

        try:
            text = await self.backend.complete(build_prompt(brief, attachments))
        except Exception:
            logger.exception("[GENERATE] Generation backend call failed")
            return parse_failure_artifacts(brief)

        try:
            artifacts = parse_artifacts(text, brief)
        except (ValidationError, ValueError) as e:
            logger.warning("[GENERATE] Backend output did not parse as an artifact set: %s", e)
            return parse_failure_artifacts(brief)

        logger.info("[GENERATE] Backend produced %d file(s)", len(artifacts.files))
        return artifacts
