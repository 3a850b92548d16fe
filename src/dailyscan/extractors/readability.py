from __future__ import annotations

from dataclasses import dataclass, field

from dailyscan.extractors.boilerplate import strip_boilerplate_tree
from dailyscan.extractors.candidates import ScoringWeights, collect_candidates, select_best
from dailyscan.extractors.dom import parse_html
from dailyscan.extractors.images import DEFAULT_MAX_IMAGES, extract_image_refs
from dailyscan.extractors.metadata import extract_metadata, extract_title
from dailyscan.extractors.segmenter import segment_blocks
from dailyscan.models import ArticleExtraction

UNTITLED = "Untitled"


@dataclass
class ReadabilityExtractor:
    name: str = "readability"
    weights: ScoringWeights = field(default_factory=ScoringWeights)
    document_order: bool = False
    max_images: int = DEFAULT_MAX_IMAGES

    def extract(self, html: str, base_url: str | None = None) -> ArticleExtraction:
        document = parse_html(html)
        title = extract_title(document) or UNTITLED

        stripped = strip_boilerplate_tree(parse_html(html))
        best = select_best(collect_candidates(stripped), self.weights)
        fragment = best.tag if best is not None else stripped

        blocks = segment_blocks(fragment, document_order=self.document_order)
        main_text = "\n\n".join(block.text for block in blocks)
        return ArticleExtraction(
            title=title,
            blocks=blocks,
            images=extract_image_refs(fragment, base_url, self.max_images),
            metadata=extract_metadata(document, main_text),
        )
