import re
from typing import Iterable, List, Optional

from rapidfuzz import fuzz

from .models import CatalogItem


BRACKETS_AND_QUOTES = re.compile(r"[「」『』【】〔〕〈〉《》()（）\[\]［］{}｛｝\"'“”‘’＂＇]")
WHITESPACE = re.compile(r"\s+")
DIGITS = re.compile(r"[0-9０-９]")
NOISE_TOKENS = re.compile(
    r"拡張セット|拡張|日本語版|新版|完全版|改訂第?[0-9０-９一二三四五六七八九十]*版|再販|再版"
    r"|localized edition|new edition|complete edition"
    r"|revised\s+(?:\d+(?:st|nd|rd|th)|first|second|third|fourth|fifth)\s+edition"
    r"|expansion|reprint",
    re.IGNORECASE,
)
SUBTITLE_SEPARATOR = re.compile(r"[:：\-‐‑–—―〜～]")

SCORE_EXACT = 100
SCORE_CANDIDATE_CONTAINS_QUERY = 70
SCORE_QUERY_CONTAINS_CANDIDATE = 60


def _normalize_once(title: str) -> str:
    t = BRACKETS_AND_QUOTES.sub("", title)
    t = NOISE_TOKENS.sub("", t)
    t = DIGITS.sub("", t)
    t = WHITESPACE.sub(" ", t)
    return t.strip().lower()


def normalize(title: str) -> str:
    """Canonical form of a product title for comparison.
    Deletes brackets/quotes, edition noise and digits, collapses whitespace
    and lowercases, so exact-match scoring is case-insensitive.
    Repeated until stable so that normalize(normalize(x)) == normalize(x).
    """
    current = title or ""
    while True:
        nxt = _normalize_once(current)
        if nxt == current:
            return nxt
        current = nxt


def strip_subtitle(title: str) -> str:
    return SUBTITLE_SEPARATOR.split(title or "", maxsplit=1)[0].strip()


def build_query_variants(title: str) -> List[str]:
    """Search strings for one suggested title, in the order they are tried:
    raw, normalized, raw without subtitle, normalized without subtitle.
    """
    raw = (title or "").strip()
    norm = normalize(raw)
    variants: List[str] = []
    for v in (raw, norm, strip_subtitle(raw), strip_subtitle(norm)):
        if v and v not in variants:
            variants.append(v)
    return variants


def score(query: str, candidate_name: str) -> int:
    q = normalize(query)
    c = normalize(candidate_name)
    if not q or not c:
        return 0
    if q == c:
        return SCORE_EXACT
    if q in c:
        return SCORE_CANDIDATE_CONTAINS_QUERY
    if c in q:
        return SCORE_QUERY_CONTAINS_CANDIDATE
    return 0


def pick_best_eligible(query: str, items: Iterable[CatalogItem]) -> Optional[CatalogItem]:
    """Highest scoring visible and in-stock item, or None if nothing scores above 0.
    The first item wins among equal scores.
    """
    best: Optional[CatalogItem] = None
    best_score = 0
    for item in items:
        if not item.eligible:
            continue
        s = score(query, item.name)
        if s > best_score:
            best, best_score = item, s
    return best


def pick_fallback_candidate(query: str, items: Iterable[CatalogItem]) -> Optional[CatalogItem]:
    # Closest visible item by fuzzy ratio; stock is checked later by the caller
    q = normalize(query)
    best: Optional[CatalogItem] = None
    best_ratio = -1.0
    for item in items:
        if not item.is_visible:
            continue
        ratio = fuzz.ratio(q, normalize(item.name))
        if ratio > best_ratio:
            best, best_ratio = item, ratio
    return best
