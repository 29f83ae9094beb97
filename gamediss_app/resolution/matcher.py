"""
================================================================================
GameDiss - Catalog Matcher
================================================================================
Resolves a normalized title key to one catalog entry.

Algorithm:
  1. Exact lookup in the snapshot index (confidence 1.0)
  2. Otherwise fuzzy-score the key against every normalized canonical name
     and alias with rapidfuzz:
       - ratio            (length-normalized edit distance)
       - token_sort_ratio (same, ignoring word order)
     An entry scores the best value over all of its names.
  3. Accept the best entry only if score >= threshold, else "no match"

Ties on score are broken by:
  substring containment > smaller length difference > catalog order

token_set_ratio is not used: it scores any subset as a perfect
match ("unrelated title" vs "title").

The matcher is pure: no I/O, no state besides its threshold.
================================================================================
"""

import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

from rapidfuzz import fuzz, process

from .models import CatalogEntry, CatalogSnapshot, ResolutionResult


logger = logging.getLogger(__name__)


DEFAULT_THRESHOLD = 0.8


def similarity(key: str, name: str) -> float:
    """
    Similarity of two normalized keys on a 0-1 scale.

    Examples:
        similarity("hollow knight silksong", "hollow knight silksong") -> 1.0
        similarity("hollow knigt silksogn", "hollow knight silksong")  -> ~0.93
        similarity("silksong hollow knight", "hollow knight silksong") -> 1.0
    """
    if not key or not name:
        return 0.0
    if key == name:
        return 1.0
    return max(fuzz.ratio(key, name), fuzz.token_sort_ratio(key, name)) / 100.0


def _combined_scorer(s1, s2, *, score_cutoff=None, **kwargs):
    score = max(fuzz.ratio(s1, s2), fuzz.token_sort_ratio(s1, s2))
    if score_cutoff is not None and score < score_cutoff:
        return 0.0
    return score


class TitleMatcher:
    """Matches normalized keys against a CatalogSnapshot."""

    def __init__(
        self,
        threshold: float = DEFAULT_THRESHOLD,
        clock: Callable[[], float] = time.time
    ):
        """
        Args:
            threshold: Minimum similarity (0-1) for a match
            clock: Time source used for resolved_at
        """
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be within [0, 1], got {threshold}")
        self.threshold = threshold
        self._clock = clock

    def match(self, key: str, snapshot: CatalogSnapshot) -> ResolutionResult:
        """
        Find the catalog entry for a normalized key.

        Args:
            key: Output of normalize()
            snapshot: Catalog snapshot to search

        Returns:
            ResolutionResult; matched_id is None when nothing scores at
            least the threshold
        """
        if not key:
            return self._no_match(key, 0.0)

        exact = snapshot.lookup(key)
        if exact:
            entry = exact[0]
            logger.debug(f"Exact match: '{key}' -> {entry.id}")
            return self._matched(key, entry, 1.0)

        return self._fuzzy_match(key, snapshot)

    def _fuzzy_match(self, key: str, snapshot: CatalogSnapshot) -> ResolutionResult:
        if not snapshot.names:
            return self._no_match(key, 0.0)

        choices = [name for name, _ in snapshot.names]
        cutoff = self.threshold * 100.0

        hits = process.extract(
            key,
            choices,
            scorer=_combined_scorer,
            processor=None,
            limit=None,
            score_cutoff=cutoff,
        )

        if not hits:
            best = process.extractOne(key, choices, scorer=_combined_scorer, processor=None)
            best_score = best[1] / 100.0 if best else 0.0
            logger.debug(f"No match for '{key}' above {self.threshold:.2f} "
                         f"(best={best_score:.3f})")
            return self._no_match(key, best_score)

        # Best score per catalog entry
        per_entry: Dict[int, Tuple[float, str]] = {}
        for name, score, choice_index in hits:
            position = snapshot.names[choice_index][1]
            current = per_entry.get(position)
            if current is None or score > current[0]:
                per_entry[position] = (score, name)

        top_score = max(score for score, _ in per_entry.values())
        tied: List[Tuple[int, str]] = [
            (position, name)
            for position, (score, name) in per_entry.items()
            if score == top_score
        ]
        position, name = min(tied, key=lambda item: self._tie_break(key, item))
        entry = snapshot.ordered[position]

        logger.debug(f"Fuzzy match: '{key}' -> '{name}' ({entry.id}, "
                     f"score={top_score:.1f}, tied={len(tied)})")
        return self._matched(key, entry, top_score / 100.0)

    @staticmethod
    def _tie_break(key: str, item: Tuple[int, str]) -> Tuple[int, int, int]:
        position, name = item
        contained = key in name or name in key
        return (0 if contained else 1, abs(len(name) - len(key)), position)

    def _matched(self, key: str, entry: CatalogEntry, confidence: float) -> ResolutionResult:
        return ResolutionResult(
            query=key,
            matched_id=entry.id,
            matched_name=entry.canonical_name,
            confidence=min(1.0, confidence),
            resolved_at=self._clock(),
        )

    def _no_match(self, key: str, best_score: float) -> ResolutionResult:
        return ResolutionResult(
            query=key,
            matched_id=None,
            matched_name=None,
            confidence=best_score,
            resolved_at=self._clock(),
        )
