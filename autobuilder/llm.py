import asyncio
import json
from typing import List, Optional
from openai import OpenAI  # works with AI Pipe / OpenRouter base_url too
from .models import AttachmentInfo
from .settings import Settings

SYSTEM_PROMPT = "You generate minimal static web apps. Reply with a single JSON object and nothing else."

def build_prompt(brief: str, attachments: List[AttachmentInfo]) -> str:
    attach_meta = [a.model_dump() for a in attachments]
    return (
        "You are an assistant that returns a minimal static web app for the following brief.\n"
        "Reply ONLY with a JSON object of the shape:\n"
        '{"files": [{"path": "index.html", "content": "..."}], "readme": "..."}\n'
        "where each content holds the exact file contents and readme is a README.md in markdown.\n"
        "Use relative paths only. Attachments, if any, sit next to index.html.\n\n"
        f"Brief:\n{brief}\n\n"
        f"Attachments: {json.dumps(attach_meta)}"
    )

class OpenAIBackend:
    """Generation backend on the OpenAI chat completions API."""

    def __init__(self, api_key: str, base_url: str = "", model: str = "gpt-4o-mini", max_tokens: int = 1500):
        kwargs = {"api_key": api_key}
        if base_url:
            kwargs["base_url"] = base_url
        self._client = OpenAI(**kwargs)
        self.model = model
        self.max_tokens = max_tokens

    def _complete(self, prompt: str) -> str:
        resp = self._client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            max_tokens=self.max_tokens,
            temperature=0.2,
        )
        return resp.choices[0].message.content or ""

    async def complete(self, prompt: str) -> str:
        return await asyncio.to_thread(self._complete, prompt)

def build_backend(settings: Settings) -> Optional[OpenAIBackend]:
    if not settings.OPENAI_API_KEY:
        return None
    return OpenAIBackend(
        api_key=settings.OPENAI_API_KEY,
        base_url=settings.OPENAI_BASE_URL,
        model=settings.OPENAI_MODEL,
        max_tokens=settings.OPENAI_MAX_TOKENS,
    )
