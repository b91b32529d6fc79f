"""
Package name matching with a 2-tier cascade.

Resolves a user's package guess ("Zod", "upstash ratelimit") to one of the
indexed package names:
1. Exact match (case-insensitive, with or without npm scope)
2. Fuzzy match (RapidFuzz ratio) above a confidence floor

Package names are short strings, so fuzzy string matching is enough here.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from rapidfuzz import fuzz, process

DEFAULT_MATCH_FLOOR = 60


@dataclass
class PackageMatch:
    """
    Result of a package matching attempt.

    Attributes:
        name: Matched package name (None if no confident match)
        score: Confidence score (0-100)
        tier: Which tier decided ("exact", "fuzzy", "none")
        candidates: Top (name, score) pairs for suggestions
    """
    name: Optional[str]
    score: float
    tier: str
    candidates: List[Tuple[str, float]] = field(default_factory=list)


def _normalize(name: str) -> str:
    return name.lower().strip()


def _unscoped(name: str) -> str:
    """Drop the leading "@" of a scoped name."""
    return name.lstrip("@")


class PackageMatcher:
    """Matches user input against indexed package names."""

    def __init__(self, package_names: Iterable[str], floor: int = DEFAULT_MATCH_FLOOR):
        self._names = sorted(set(package_names))
        self._floor = floor

        self._exact: Dict[str, str] = {}
        for name in self._names:
            lowered = _normalize(name)
            self._exact.setdefault(lowered, name)
            self._exact.setdefault(_unscoped(lowered), name)
            # "@vercel/kv" is also reachable as "kv" when unambiguous
            if "/" in lowered:
                self._exact.setdefault(lowered.split("/", 1)[1], name)

    def find_best(self, target: str) -> PackageMatch:
        """
        Find the indexed package that best matches ``target``.

        Returns:
            PackageMatch with the matched name (or None) and candidates
        """
        if not self._names:
            return PackageMatch(name=None, score=0.0, tier="none")

        wanted = _normalize(target)
        for key in (wanted, _unscoped(wanted), wanted.replace(" ", "/"), wanted.replace(" ", "-")):
            if key in self._exact:
                return PackageMatch(name=self._exact[key], score=100.0, tier="exact")

        return self._fuzzy_match(wanted)

    def _fuzzy_match(self, target: str) -> PackageMatch:
        choices = {name: _unscoped(_normalize(name)) for name in self._names}
        results = process.extract(
            _unscoped(target),
            choices,
            scorer=fuzz.ratio,
            limit=5,
        )
        # extract on a dict yields (choice_value, score, key)
        candidates = [(key, score) for _, score, key in results]

        if candidates and candidates[0][1] >= self._floor:
            best_name, best_score = candidates[0]
            return PackageMatch(name=best_name, score=best_score, tier="fuzzy", candidates=candidates)

        best_score = candidates[0][1] if candidates else 0.0
        return PackageMatch(name=None, score=best_score, tier="fuzzy", candidates=candidates)


class PackageNotFoundError(Exception):
    """
    Raised when a package guess matches nothing in the index.

    Attributes:
        target: The name that was asked for
        candidates: Closest indexed names, best first
    """
    def __init__(self, target: str, candidates: List[str]):
        self.target = target
        self.candidates = candidates
        super().__init__(f"Package '{target}' is not indexed")
