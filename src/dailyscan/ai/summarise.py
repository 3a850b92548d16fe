from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from dailyscan.ai.base import OpenAIClient, PromptSpec
from dailyscan.errors import SummaryError

PROMPT = PromptSpec(
    name="summarise",
    version="v1",
    system="You are an assistant that summarizes web snippets concisely in English.",
    template=(
        "Title: {title}\n"
        "Link: {url}\n"
        "Text: {snippet}\n\n"
        "Task: Create a short, readable summary (1-3 sentences)."
    ),
)


class Summarizer(Protocol):
    async def summarise(self, snippet: str, title: str, url: str) -> str:
        ...


@dataclass
class OpenAISummarizer:
    client: OpenAIClient = field(default_factory=OpenAIClient)
    temperature: float = 0.3
    max_tokens: int = 200

    async def summarise(self, snippet: str, title: str, url: str) -> str:
        prompt = PROMPT.render(title=title, url=url, snippet=snippet)
        response = await self.client.chat(
            PROMPT.system,
            prompt,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        text = response.get("response", "").strip()
        if not text:
            raise SummaryError("OpenAI returned an empty summary", url=url)
        return text
