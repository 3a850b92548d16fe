"""HTML content extraction: encoding, boilerplate, candidates, blocks and metadata."""

from __future__ import annotations

__all__ = [
    "DecodedDocument",
    "ReadabilityExtractor",
    "RenderDecision",
    "RenderPolicy",
    "ScoringWeights",
    "collect_candidates",
    "extract_metadata",
    "extract_title",
    "resolve_encoding",
    "score_candidate",
    "segment_blocks",
    "select_best",
    "strip_boilerplate",
    "strip_boilerplate_tree",
]

from dailyscan.extractors.boilerplate import strip_boilerplate, strip_boilerplate_tree
from dailyscan.extractors.candidates import (
    ScoringWeights,
    collect_candidates,
    score_candidate,
    select_best,
)
from dailyscan.extractors.encoding import DecodedDocument, resolve_encoding
from dailyscan.extractors.metadata import extract_metadata, extract_title
from dailyscan.extractors.readability import ReadabilityExtractor
from dailyscan.extractors.render import RenderDecision, RenderPolicy
from dailyscan.extractors.segmenter import segment_blocks
