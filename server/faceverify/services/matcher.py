"""
Decide whether a query face embedding matches any stored one.

Pure functions: no I/O, no module state. The caller owns persistence.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np

from faceverify.errors import DimensionMismatch
from faceverify.models import MatchOutcome

Embedding = Union[Sequence[float], np.ndarray]

STRATEGIES = ("first", "closest")


@dataclass(frozen=True)
class MatchDecision:
    outcome: MatchOutcome
    # Index into candidates of the deciding entry; None when nothing matched.
    index: Optional[int]
    # Distance of the deciding entry, or of the nearest one on NO_MATCH.
    distance: Optional[float]

    @property
    def matched(self) -> bool:
        return self.outcome is MatchOutcome.MATCHED


def _as_vector(embedding: Embedding) -> np.ndarray:
    return np.asarray(embedding, dtype=np.float64).reshape(-1)


def euclidean_distance(left: Embedding, right: Embedding) -> float:
    """L2 norm of the element-wise difference. Lengths must be equal."""
    a = _as_vector(left)
    b = _as_vector(right)
    if a.shape[0] != b.shape[0]:
        raise DimensionMismatch(expected=a.shape[0], actual=b.shape[0])
    return float(np.linalg.norm(a - b))


def find_match(
    query: Embedding,
    candidates: Sequence[Embedding],
    threshold: float,
    strategy: str = "first",
) -> MatchDecision:
    """
    Compare ``query`` against ``candidates`` in order.

    strategy="first" returns on the first candidate strictly closer than
    ``threshold``. strategy="closest" scans every candidate and reports the
    nearest one if it is within ``threshold``. Both strategies agree on
    whether a match exists; they can differ only in which candidate is
    reported.

    Raises DimensionMismatch if any candidate's length differs from the
    query's, and ValueError for an empty query, a negative threshold or an
    unknown strategy.
    """
    if strategy not in STRATEGIES:
        raise ValueError(f"unknown match strategy: {strategy!r}")
    if not (threshold >= 0) or math.isinf(threshold):
        raise ValueError(f"threshold must be a finite non-negative number, got {threshold!r}")

    q = _as_vector(query)
    if q.shape[0] == 0:
        raise ValueError("query embedding is empty")

    # Whole-request failure even for candidates a short-circuit would skip.
    for candidate in candidates:
        size = _as_vector(candidate).shape[0]
        if size != q.shape[0]:
            raise DimensionMismatch(expected=q.shape[0], actual=size)

    best_index: Optional[int] = None
    best_distance: Optional[float] = None
    for index, candidate in enumerate(candidates):
        distance = euclidean_distance(q, candidate)
        if distance < threshold and strategy == "first":
            return MatchDecision(MatchOutcome.MATCHED, index, distance)
        if best_distance is None or distance < best_distance:
            best_index, best_distance = index, distance

    if best_distance is not None and best_distance < threshold:
        return MatchDecision(MatchOutcome.MATCHED, best_index, best_distance)
    return MatchDecision(MatchOutcome.NO_MATCH, None, best_distance)


def evaluate(query: Embedding, candidates: Sequence[Embedding], threshold: float) -> MatchOutcome:
    """Short-circuit match decision: MATCHED on the first candidate below threshold."""
    return find_match(query, candidates, threshold, strategy="first").outcome
