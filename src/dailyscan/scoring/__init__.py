"""Content quality classification and its editable term lists."""

from __future__ import annotations

__all__ = [
    "QualityClassifier",
    "QualityTerms",
    "QualityTermsStore",
    "QualityThresholds",
    "TERM_LIST_NAMES",
    "classify",
    "reassess",
]

from dailyscan.scoring.quality import QualityClassifier, QualityThresholds, classify, reassess
from dailyscan.scoring.terms import TERM_LIST_NAMES, QualityTerms, QualityTermsStore
