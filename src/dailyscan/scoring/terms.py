from __future__ import annotations

import os
import tempfile
import threading
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Iterable, Mapping

import yaml

from dailyscan.utils import normalize_terms

TERM_LIST_NAMES = (
    "quality_indicators",
    "low_quality_indicators",
    "meaningful_content_patterns",
    "empty_content_patterns",
    "excluded_url_patterns",
)

DEFAULT_EXCLUDED_URL_PATTERNS = (
    "sitemap", "robots.txt", "privacy", "terms", "legal",
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    ".zip", ".rar", ".exe", ".dmg", ".iso",
)

DEFAULT_QUALITY_INDICATORS = (
    # en
    "article", "news", "story", "report", "analysis", "opinion", "interview", "review",
    "tutorial", "guide", "explanation", "breaking", "update", "investigation", "feature",
    "editorial",
    # de
    "artikel", "nachrichten", "geschichte", "bericht", "analyse", "meinung", "bewertung",
    "anleitung", "leitfaden", "erklärung", "eilmeldung", "aktualisierung", "untersuchung",
    "leitartikel",
    # fr
    "actualités", "histoire", "rapport", "entretien", "critique", "tutoriel", "explication",
    "urgent", "mise à jour", "enquête", "article spécial", "éditorial",
    # es
    "artículo", "noticias", "historia", "informe", "análisis", "opinión", "entrevista",
    "reseña", "guía", "explicación", "urgente", "actualización", "investigación",
    "artículo especial",
    # it
    "articolo", "notizie", "storia", "rapporto", "analisi", "opinione", "intervista",
    "recensione", "guida", "spiegazione", "aggiornamento", "indagine", "articolo speciale",
    "editoriale",
    # zh
    "文章", "新闻", "故事", "报告", "分析", "观点", "采访", "评论", "教程", "指南", "解释",
    "突发", "更新", "调查", "专题", "社论",
)

DEFAULT_LOW_QUALITY_INDICATORS = (
    # en
    "cookie", "consent", "banner", "popup", "modal", "overlay", "advertisement", "sponsored",
    "promo", "offer", "sale", "login", "signup", "register", "subscribe", "newsletter",
    "follow us", "like us", "share this", "click here", "read more",
    # de
    "einverständnis", "werbung", "gesponsert", "angebot", "verkauf", "anmelden",
    "registrieren", "abonnieren", "folgen sie uns", "gefällt ihnen", "teilen sie",
    "hier klicken", "mehr lesen",
    # fr
    "consentement", "bannière", "publicité", "sponsorisé", "offre", "vente", "connexion",
    "inscription", "s'abonner", "suivez-nous", "aimez-nous", "partagez", "cliquez ici",
    "lire la suite",
    # es
    "consentimiento", "publicidad", "patrocinado", "oferta", "venta", "iniciar sesión",
    "registrarse", "suscribirse", "boletín", "síguenos", "me gusta", "compartir",
    "haz clic aquí", "leer más",
    # it
    "consenso", "pubblicità", "sponsorizzato", "offerta", "vendita", "accedi", "registrati",
    "iscriviti", "seguici", "mi piace", "condividi", "clicca qui", "leggi di più",
    # zh
    "同意", "横幅", "广告", "赞助", "优惠", "销售", "登录", "注册", "订阅", "通讯", "关注我们",
    "点赞", "分享", "点击这里", "阅读更多",
)

DEFAULT_MEANINGFUL_CONTENT_PATTERNS = (
    # de
    "berichtet", "erklärt", "analysiert", "untersucht", "zeigt", "beschreibt", "erzählt",
    "informiert", "berichtet über", "nachrichten", "meldung", "entwicklung", "situation",
    "ereignis", "artikel", "analyse", "kommentar", "interview", "reportage",
    # en
    "reports", "explains", "analyzes", "investigates", "shows", "describes", "tells",
    "informs", "covers", "discusses", "news", "update", "development", "event", "article",
    "analysis", "commentary", "feature", "breaking", "exclusive", "investigation", "report",
    "story",
    # fr
    "rapporte", "explique", "enquête", "montre", "décrit", "raconte", "informe", "couvre",
    "discute", "actualités", "mise à jour", "développement", "événement", "commentaire",
    "entretien",
    # es
    "informa", "explica", "analiza", "investiga", "muestra", "describe", "cuenta", "cubre",
    "noticias", "actualización", "desarrollo", "situación", "evento", "artículo", "análisis",
    "comentario", "entrevista", "reportaje",
    # it
    "riporta", "spiega", "analizza", "indaga", "mostra", "descrive", "racconta", "copre",
    "notizie", "aggiornamento", "sviluppo", "situazione", "articolo", "analisi", "commento",
    "intervista",
    # zh
    "报道", "解释", "分析", "调查", "显示", "描述", "讲述", "通知", "覆盖", "讨论", "新闻",
    "更新", "发展", "情况", "事件", "文章", "评论", "采访", "特写",
)

DEFAULT_EMPTY_CONTENT_PATTERNS = (
    # de
    "folgen sie uns", "teilen sie", "gefällt ihnen", "abonnieren", "anmelden", "registrieren",
    "einloggen", "konto erstellen", "keine inhalte", "nichts zu sehen", "leer", "placeholder",
    "cookie", "datenschutz", "impressum", "agb", "widerruf",
    # en
    "follow us", "share this", "like us", "subscribe", "sign up", "register", "log in",
    "create account", "no content", "nothing to see", "empty", "privacy", "terms", "legal",
    "disclaimer", "click here", "read more", "learn more", "find out more",
    # fr
    "suivez-nous", "partagez", "aimez-nous", "abonnez-vous", "s'inscrire", "s'enregistrer",
    "se connecter", "créer un compte", "aucun contenu", "rien à voir", "vide",
    "espace réservé", "confidentialité", "mentions légales", "cgv",
    # es
    "síguenos", "comparte", "gusta", "suscribirse", "registrarse", "iniciar sesión",
    "crear cuenta", "sin contenido", "nada que ver", "vacío", "marcador de posición",
    "privacidad", "términos",
    # it
    "seguici", "condividi", "mi piace", "iscriviti", "registrati", "accedi", "crea account",
    "nessun contenuto", "niente da vedere", "vuoto", "segnaposto", "termini", "legale",
    # zh
    "关注我们", "分享", "点赞", "订阅", "注册", "登录", "创建账户", "无内容", "无内容可看",
    "空白", "占位符", "隐私", "条款", "法律",
)


@dataclass(frozen=True)
class QualityTerms:
    quality_indicators: tuple[str, ...] = ()
    low_quality_indicators: tuple[str, ...] = ()
    meaningful_content_patterns: tuple[str, ...] = ()
    empty_content_patterns: tuple[str, ...] = ()
    excluded_url_patterns: tuple[str, ...] = ()

    @classmethod
    def defaults(cls) -> "QualityTerms":
        return cls(
            quality_indicators=DEFAULT_QUALITY_INDICATORS,
            low_quality_indicators=DEFAULT_LOW_QUALITY_INDICATORS,
            meaningful_content_patterns=DEFAULT_MEANINGFUL_CONTENT_PATTERNS,
            empty_content_patterns=DEFAULT_EMPTY_CONTENT_PATTERNS,
            excluded_url_patterns=DEFAULT_EXCLUDED_URL_PATTERNS,
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Iterable[str]]) -> "QualityTerms":
        values: dict[str, tuple[str, ...]] = {}
        for name, items in data.items():
            _check_name(name)
            if isinstance(items, str) or not isinstance(items, Iterable):
                raise ValueError(f"Term list {name!r} must be a list of strings")
            values[name] = tuple(normalize_terms(items))
        return cls(**values)

    def get(self, name: str) -> tuple[str, ...]:
        _check_name(name)
        return getattr(self, name)

    def with_list(self, name: str, values: Iterable[str]) -> "QualityTerms":
        _check_name(name)
        return replace(self, **{name: tuple(normalize_terms(values))})

    def to_dict(self) -> dict[str, list[str]]:
        return {item.name: list(getattr(self, item.name)) for item in fields(self)}


def _check_name(name: str) -> None:
    if name not in TERM_LIST_NAMES:
        raise ValueError(f"Unknown term list {name!r}; expected one of {', '.join(TERM_LIST_NAMES)}")


class QualityTermsStore:
    """Process-wide, user-editable term lists backed by a YAML file.

    The lists are seeded from the multilingual defaults the first time they are
    read; a list missing from the file is seeded on its own. Every write builds
    a fresh frozen ``QualityTerms`` and swaps it in under a lock, so a reader
    holding a snapshot never sees a half-applied edit. Pass ``path=None`` for a
    purely in-memory store.
    """

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._terms: QualityTerms | None = None

    @property
    def path(self) -> Path | None:
        return self._path

    def snapshot(self) -> QualityTerms:
        terms = self._terms
        if terms is not None:
            return terms
        with self._lock:
            if self._terms is None:
                self._terms = self._load_or_seed()
            return self._terms

    def get(self, name: str) -> list[str]:
        return list(self.snapshot().get(name))

    def set(self, name: str, values: Iterable[str]) -> QualityTerms:
        _check_name(name)
        materialized = list(values)
        with self._lock:
            current = self._terms if self._terms is not None else self._load_or_seed()
            updated = current.with_list(name, materialized)
            self._persist(updated)
            self._terms = updated
        return updated

    def replace(self, terms: QualityTerms) -> QualityTerms:
        normalized = QualityTerms.from_mapping(terms.to_dict())
        with self._lock:
            self._persist(normalized)
            self._terms = normalized
        return normalized

    def reset(self) -> QualityTerms:
        return self.replace(QualityTerms.defaults())

    def _load_or_seed(self) -> QualityTerms:
        if self._path is None or not self._path.exists():
            terms = QualityTerms.defaults()
            self._persist(terms)
            return terms

        raw = self._path.read_text(encoding="utf-8")
        data = yaml.safe_load(raw) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{self._path} must define a mapping at the top level")
        defaults = QualityTerms.defaults().to_dict()
        known = {name: value for name, value in data.items() if name in TERM_LIST_NAMES}
        terms = QualityTerms.from_mapping({**defaults, **known})
        if set(known) != set(TERM_LIST_NAMES):
            self._persist(terms)
        return terms

    def _persist(self, terms: QualityTerms) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = yaml.safe_dump(terms.to_dict(), allow_unicode=True, sort_keys=False)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, self._path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise
