from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from dailyscan.cancellation import CancellationToken
from dailyscan.errors import Cancelled
from dailyscan.extractors.boilerplate import remove_code_and_comments
from dailyscan.extractors.dom import link_density, parse_html, tag_text, word_count
from dailyscan.models import StageResult, StageStatus

RENDER_STAGE = "render"


class Renderer(Protocol):
    name: str

    async def render(self, url: str) -> str:
        ...


@dataclass(frozen=True)
class RenderDecision:
    needed: bool
    word_count: int
    link_density: float
    reason: str


@dataclass(frozen=True)
class RenderPolicy:
    min_words: int = 200
    max_link_density: float = 1.5

    def decide(self, html: str) -> RenderDecision:
        soup = remove_code_and_comments(parse_html(html))
        text = tag_text(soup)
        words = word_count(text)
        density = link_density(len(soup.find_all("a")), len(text))
        if words < self.min_words:
            return RenderDecision(True, words, density, f"word count {words} < {self.min_words}")
        if density > self.max_link_density:
            return RenderDecision(
                True, words, density, f"link density {density:.2f} > {self.max_link_density}"
            )
        return RenderDecision(False, words, density, "static HTML has enough content")


async def render_with_fallback(
    renderer: Renderer | None,
    url: str,
    html: str,
    policy: RenderPolicy,
    token: CancellationToken | None = None,
) -> StageResult[str]:
    """Re-render `url` when the static HTML looks script-driven; never fails."""
    decision = policy.decide(html)
    if not decision.needed:
        return StageResult(RENDER_STAGE, StageStatus.SUCCEEDED, html, (decision.reason,))
    if renderer is None:
        return StageResult(
            RENDER_STAGE, StageStatus.SUCCEEDED, html, (decision.reason, "no renderer configured")
        )

    token = token or CancellationToken()
    try:
        rendered = await token.guard(renderer.render(url))
    except Cancelled:
        raise
    except Exception as exc:
        return StageResult(
            RENDER_STAGE,
            StageStatus.DEGRADED,
            html,
            (decision.reason, f"{renderer.name} failed: {exc}"),
        )
    if not rendered or not rendered.strip():
        return StageResult(
            RENDER_STAGE,
            StageStatus.DEGRADED,
            html,
            (decision.reason, f"{renderer.name} returned no HTML"),
        )
    return StageResult(
        RENDER_STAGE, StageStatus.SUCCEEDED, rendered, (decision.reason, f"rendered by {renderer.name}")
    )
