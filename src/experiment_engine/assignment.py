"""
Deterministic experiment assignment for A/B testing.

Uses MurmurHash3 of (experiment_id, unit_id) to ensure stable assignments
across processes, with weighted multi-variant splits and an independent hash
namespace for traffic allocation.
"""

import logging
import threading
import uuid
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import mmh3

from .exceptions import ExperimentConfigError
from .schema import Experiment, Exposure, Variant, utc_now

logger = logging.getLogger(__name__)

MAX_HASH = 0xFFFFFFFF


def hash_to_unit(key: str, namespace: str) -> float:
    """
    Deterministic hash of ``namespace:key`` to [0, 1].

    Same key + namespace always maps to the same value.
    """
    h = mmh3.hash(f"{namespace}:{key}", 0, signed=False)
    return h / MAX_HASH


def _cumulative_weights(variants: Sequence[Variant]) -> List[float]:
    splits = [float(v.traffic_split) for v in variants]
    if any(s < 0 for s in splits):
        raise ExperimentConfigError("Variant traffic splits must be non-negative")
    total = sum(splits)
    if total <= 0:
        raise ExperimentConfigError("Variant traffic splits must have a positive sum")

    cumulative = []
    running = 0.0
    for s in splits:
        running += s
        cumulative.append(running / total)
    return cumulative


def assign_variant(
    unit_id: str,
    experiment_id: str,
    variants: Sequence[Variant],
) -> Optional[Variant]:
    """
    Assign a unit to a variant deterministically.

    Args:
        unit_id: Randomization unit identifier (user, session or device id)
        experiment_id: Experiment identifier
        variants: Ordered variants; traffic splits are normalised by their sum

    Returns:
        The assigned Variant, or None when there are no variants (excluded)

    Raises:
        ExperimentConfigError: if splits are negative or sum to zero
    """
    if not variants:
        return None

    boundaries = _cumulative_weights(variants)
    value = hash_to_unit(unit_id, experiment_id)
    for variant, boundary in zip(variants, boundaries):
        if value < boundary:
            return variant
    # Rounding can leave value >= the last boundary
    return variants[-1]


def should_include_in_experiment(
    unit_id: str,
    experiment_id: str,
    traffic_allocation: float,
) -> bool:
    """
    Decide whether a unit enters the experiment at all.

    Uses the ``experiment_id:traffic`` namespace so allocation sampling is
    independent of variant assignment for the same unit.
    """
    if traffic_allocation >= 100:
        return True
    if traffic_allocation <= 0:
        return False
    return hash_to_unit(unit_id, f"{experiment_id}:traffic") < traffic_allocation / 100


class AssignmentCache:
    """
    Memoised assignments keyed by (experiment_id, unit_id).

    Purely an optimisation; entries can be invalidated or cleared at any time.
    """

    def __init__(self) -> None:
        self._entries: Dict[Tuple[str, str], str] = {}
        self._lock = threading.RLock()

    def get(self, experiment_id: str, unit_id: str) -> Optional[str]:
        with self._lock:
            return self._entries.get((experiment_id, unit_id))

    def set(self, experiment_id: str, unit_id: str, variant_id: str) -> None:
        with self._lock:
            self._entries[(experiment_id, unit_id)] = variant_id

    def invalidate(self, experiment_id: str, unit_id: Optional[str] = None) -> int:
        """Drop one unit's entry, or every entry of the experiment. Returns count removed."""
        with self._lock:
            if unit_id is not None:
                return 1 if self._entries.pop((experiment_id, unit_id), None) else 0
            keys = [k for k in self._entries if k[0] == experiment_id]
            for k in keys:
                del self._entries[k]
            return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class VariantAssigner:
    """Applies traffic allocation and variant assignment through a cache."""

    def __init__(self, cache: Optional[AssignmentCache] = None) -> None:
        self.cache = cache if cache is not None else AssignmentCache()

    def get_or_assign(
        self,
        unit_id: str,
        experiment_id: str,
        variants: Sequence[Variant],
        traffic_allocation: float = 100.0,
    ) -> Optional[Variant]:
        """
        Return the unit's variant, or None if it is outside the traffic allocation.

        A cached variant id that no longer matches any of ``variants`` is
        recomputed.
        """
        cached_id = self.cache.get(experiment_id, unit_id)
        if cached_id is not None:
            for v in variants:
                if v.id == cached_id:
                    return v
            self.cache.invalidate(experiment_id, unit_id)

        if not should_include_in_experiment(unit_id, experiment_id, traffic_allocation):
            return None

        variant = assign_variant(unit_id, experiment_id, variants)
        if variant is not None:
            self.cache.set(experiment_id, unit_id, variant.id)
        return variant

    def assign_units(
        self,
        unit_ids: Iterable[str],
        experiment: Experiment,
        variants: Sequence[Variant],
    ) -> Dict[str, Optional[Variant]]:
        """
        Assign multiple units to experiment variants.

        Returns:
            Dict mapping unit id -> Variant (None for excluded units)
        """
        assignments = {
            uid: self.get_or_assign(uid, experiment.id, variants, experiment.traffic_allocation)
            for uid in unit_ids
        }

        counts = Counter(v.name if v else "excluded" for v in assignments.values())
        logger.info(
            f"Assignment complete for {experiment.id}: {len(assignments)} units -> "
            + ", ".join(f"{name}={n}" for name, n in sorted(counts.items()))
        )
        return assignments


def create_exposure(
    experiment_id: str,
    variant_id: str,
    user_id: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> Exposure:
    """Build an Exposure record stamped with the current UTC time."""
    return Exposure(
        id=f"exp-{uuid.uuid4().hex[:12]}",
        experiment_id=experiment_id,
        variant_id=variant_id,
        user_id=user_id,
        timestamp=utc_now(),
        metadata=dict(metadata or {}),
    )
