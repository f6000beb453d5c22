"""
Frame Aggregation
=================

Combines per-frame counts from one video into a single crowd estimate.

Algorithm:
    1. total = max(people_count) over frames (the most crowded instant).
    2. mean_a, mean_b = per-frame group means, rounded half-up.
    3. If mean_a + mean_b exceeds total, total is raised to that sum.
    4. If total differs from mean_a + mean_b, both means are rescaled
       proportionally (ratio kept) so that a + b == total. If both means
       are zero, total is split evenly with the larger half to group a.
    5. category = classify_crowd(total).

Aggregation is order-independent (max and mean commute).
"""

import logging
import math
from typing import Optional, Sequence, Tuple

import numpy as np

from crowdguard.models.analysis import CrowdAnalysisResult
from crowdguard.models.video import FrameCounts


logger = logging.getLogger(__name__)


FALLBACK_TOTAL_PEOPLE = 13


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for value >= 0."""
    return int(math.floor(value + 0.5))


def split_counts(total: int, mean_a: int, mean_b: int) -> Tuple[int, int]:
    """
    Rescale two group counts so they sum to total.

    Args:
        total: Target sum
        mean_a: First group count
        mean_b: Second group count

    Returns:
        (a, b) with a + b == total
    """
    group_sum = mean_a + mean_b
    if group_sum == 0:
        return total - total // 2, total // 2
    if group_sum == total:
        return mean_a, mean_b

    a = min(total, round_half_up(total * mean_a / group_sum))
    return a, total - a


def aggregate_frame_counts(
    counts: Sequence[FrameCounts],
    location: Optional[str] = None,
    timestamp: Optional[float] = None,
) -> CrowdAnalysisResult:
    """
    Aggregate per-frame counts into one crowd estimate.

    Args:
        counts: Per-frame counts (failed frames contribute zeros)
        location: Source tag stamped on the result
        timestamp: Result timestamp (defaults to now)

    Returns:
        CrowdAnalysisResult with a consistent breakdown and category

    Raises:
        ValueError: If counts is empty
    """
    if not counts:
        raise ValueError("cannot aggregate zero frames")

    table = np.array(
        [[c.people_count, c.subgroup_a, c.subgroup_b] for c in counts],
        dtype=np.float64,
    )
    max_people = int(table[:, 0].max())
    mean_a = round_half_up(float(table[:, 1].mean()))
    mean_b = round_half_up(float(table[:, 2].mean()))

    total = max(max_people, mean_a + mean_b)
    boys, girls = split_counts(total, mean_a, mean_b)

    logger.debug(
        f"Aggregated {len(counts)} frames: max={max_people}, "
        f"means=({mean_a}, {mean_b}) -> total={total} split=({boys}, {girls})"
    )

    return CrowdAnalysisResult.from_counts(
        total_people=total,
        boys=boys,
        girls=girls,
        location=location,
        timestamp=timestamp,
    )


def fallback_result(location: Optional[str] = None) -> CrowdAnalysisResult:
    """Fixed mid-range estimate used when the pipeline cannot run."""
    total = FALLBACK_TOTAL_PEOPLE
    return CrowdAnalysisResult.from_counts(
        total_people=total,
        boys=total // 2,
        girls=total - total // 2,
        location=location,
    )
