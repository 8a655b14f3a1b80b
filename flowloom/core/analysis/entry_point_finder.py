"""Keyword search over scanned entry points.

Scoring tiers, per keyword (case-insensitive):
  exact path    a path segment (or the whole path) equals the keyword   +50
  name          method name contains the keyword                        +20
                class simple/full name contains the keyword             +10
                path contains the keyword without segment equality      +10
  descriptive   description or annotation text contains the keyword      +5

The result is a single ranked list across all keywords; callers that need
per-keyword subsets use ``matches_keyword``.
"""

import logging
import re
from typing import Iterable, List, Optional, Tuple

from ..constants import DEFAULT_MIN_RELEVANCE
from .models import EntryPoint, EntryPointMatch, ProjectStructure

logger = logging.getLogger(__name__)

SCORE_EXACT_PATH = 50  # above the sum of every lower tier (45)
SCORE_METHOD_NAME = 20
SCORE_CLASS_NAME = 10
SCORE_PATH_CONTAINS = 10
SCORE_DESCRIPTIVE = 5

_PATH_SEPARATORS = re.compile(r"[/:\s{}]+")


def _path_segments(path: str) -> List[str]:
    return [seg for seg in _PATH_SEPARATORS.split(path.lower()) if seg]


class EntryPointFinder:
    """Rank entry points of a batch of structures against keywords.

    Args:
        min_relevance: Matches scoring below this are dropped.
    """

    def __init__(self, min_relevance: int = DEFAULT_MIN_RELEVANCE):
        self._min_relevance = min_relevance

    def find_by_keywords(
        self,
        keywords: Iterable[str],
        structures: List[ProjectStructure],
    ) -> List[EntryPointMatch]:
        normalized = _normalize_keywords(keywords)
        if not normalized:
            return []

        matches: List[EntryPointMatch] = []
        for structure in structures:
            for ep in structure.entry_points:
                score, reasons = self._score(ep, structure, normalized)
                if score >= self._min_relevance and score > 0:
                    matches.append(EntryPointMatch(
                        entry_point=ep,
                        project_name=structure.project_name,
                        relevance_score=score,
                        match_reasons=reasons,
                    ))

        matches.sort(key=_rank_key)
        logger.info(
            f"Found {len(matches)} entry point(s) for keywords {normalized} "
            f"(min relevance {self._min_relevance})"
        )
        return matches

    def _score(
        self,
        ep: EntryPoint,
        structure: ProjectStructure,
        keywords: List[str],
    ) -> Tuple[int, List[str]]:
        score = 0
        reasons: List[str] = []

        def _hit(signal: str, keyword: str, points: int):
            nonlocal score
            score += points
            reasons.append(f"{signal} '{keyword}' (+{points})")

        path = (ep.path or "").lower()
        method_name = ep.method_name.lower()
        class_name = ep.class_name.lower()
        simple_class = class_name.rsplit(".", 1)[-1]
        descriptive = self._descriptive_text(ep, structure)

        for kw in keywords:
            if path and (path == kw or kw in _path_segments(path)):
                _hit("path segment", kw, SCORE_EXACT_PATH)
            elif kw in path:
                _hit("path contains", kw, SCORE_PATH_CONTAINS)

            if kw in method_name:
                _hit("method name", kw, SCORE_METHOD_NAME)

            if kw in simple_class or kw in class_name:
                _hit("class name", kw, SCORE_CLASS_NAME)

            if any(kw in text for text in descriptive):
                _hit("description", kw, SCORE_DESCRIPTIVE)

        return score, reasons

    @staticmethod
    def _descriptive_text(ep: EntryPoint, structure: ProjectStructure) -> List[str]:
        texts: List[str] = []
        if ep.description:
            texts.append(ep.description.lower())
        for value in ep.annotations.values():
            texts.append(str(value).lower())

        cls = structure.classes.get(ep.class_name) or structure.find_class(ep.class_name)
        method = cls.find_method(ep.method_name) if cls else None
        if method is not None:
            for ann in method.annotations:
                texts.append(ann.name.lower())
                texts.extend(str(v).lower() for v in ann.attributes.values())
        return texts


def matches_keyword(match: EntryPointMatch, keyword: str) -> bool:
    """Whether a ranked match is relevant to a single keyword."""
    kw = (keyword or "").strip().lower()
    if not kw:
        return False
    if any(f"'{kw}'" in reason for reason in match.match_reasons):
        return True
    ep = match.entry_point
    return (
        kw in ep.class_name.lower()
        or kw in ep.method_name.lower()
        or kw in (ep.path or "").lower()
    )


def _normalize_keywords(keywords: Iterable[str]) -> List[str]:
    seen: List[str] = []
    for kw in keywords or ():
        kw = (kw or "").strip().lower()
        if kw and kw not in seen:
            seen.append(kw)
    return seen


def _rank_key(match: EntryPointMatch) -> Tuple[int, int, int, str, str]:
    path: Optional[str] = match.entry_point.path
    return (
        -match.relevance_score,
        1 if path is None else 0,
        len(path) if path is not None else 0,
        match.entry_point.class_name,
        match.entry_point.method_name,
    )
