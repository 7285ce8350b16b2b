"""
Practice set selection.

Given ranked weak areas and a skill level, pick ``count`` catalog problems:

1. Take the top five ranked areas, then drop those without an eligible
   problem.
2. Split ``count`` slots across those areas in proportion to rank weight
   (largest-remainder apportionment, at least one slot per area when there
   are enough slots).
3. Split ``count`` across difficulties by the skill level's distribution
   and fill each area's slots with the difficulty furthest below target,
   falling back to the nearest available difficulty.
4. Guarantee at least two distinct difficulties when ``count >= 2`` and the
   eligible problems allow it.

The result depends only on the inputs and the catalog contents.
"""
from __future__ import annotations

import logging
import math

from .types import DIFFICULTY_ORDER, Difficulty, PracticeSelection, SkillLevel

logger = logging.getLogger(__name__)

TOP_K = 5

DIFFICULTY_DISTRIBUTION = {
    SkillLevel.BEGINNER: {
        Difficulty.EASY: 0.6, Difficulty.MEDIUM: 0.3, Difficulty.HARD: 0.1,
    },
    SkillLevel.INTERMEDIATE: {
        Difficulty.EASY: 0.3, Difficulty.MEDIUM: 0.5, Difficulty.HARD: 0.2,
    },
    SkillLevel.ADVANCED: {
        Difficulty.EASY: 0.1, Difficulty.MEDIUM: 0.4, Difficulty.HARD: 0.5,
    },
}

# Nearest first; medium is the preferred stand-in for either extreme.
FALLBACK_ORDER = {
    Difficulty.EASY: (Difficulty.EASY, Difficulty.MEDIUM, Difficulty.HARD),
    Difficulty.MEDIUM: (Difficulty.MEDIUM, Difficulty.EASY, Difficulty.HARD),
    Difficulty.HARD: (Difficulty.HARD, Difficulty.MEDIUM, Difficulty.EASY),
}


def largest_remainder(weights: list[float], total: int) -> list[int]:
    """Apportion *total* integer units proportionally to *weights*.

    Leftover units go to the largest fractional remainders; ties go to the
    larger weight, then the earlier index. All-zero weights split evenly.
    """
    if total <= 0 or not weights:
        return [0] * len(weights)
    weight_sum = sum(weights)
    if weight_sum <= 0:
        weights = [1.0] * len(weights)
        weight_sum = float(len(weights))

    quotas = [w * total / weight_sum for w in weights]
    seats = [int(math.floor(q)) for q in quotas]
    leftover = total - sum(seats)
    order = sorted(
        range(len(weights)),
        key=lambda i: (-(quotas[i] - seats[i]), -weights[i], i),
    )
    for i in order[:leftover]:
        seats[i] += 1
    return seats


def allocate_slots(weights: list[float], count: int) -> list[int]:
    """Largest-remainder slots, raised to one per area when count allows."""
    slots = largest_remainder(weights, count)
    if count >= len(weights):
        for i, seats in enumerate(slots):
            if seats == 0 and weights[i] > 0:
                donor = max(range(len(slots)), key=lambda j: (slots[j], -j))
                slots[donor] -= 1
                slots[i] = 1
    return slots


def _skill(skill_level) -> SkillLevel:
    try:
        return SkillLevel(skill_level)
    except ValueError:
        logger.warning(f"Unknown skill level {skill_level!r}, using beginner")
        return SkillLevel.BEGINNER


class PracticeSelector:
    """Selects practice problems from the read-only catalog."""

    def __init__(self, repository, top_k: int = TOP_K, distributions=None):
        self.repository = repository
        self.top_k = top_k
        self.distributions = distributions or DIFFICULTY_DISTRIBUTION

    def select(self, ranked_weak_areas, skill_level, count: int) -> PracticeSelection:
        """Pick *count* problems for the ranked weak areas.

        Returns:
            A ``PracticeSelection``. When no ranked area has an eligible
            problem, the selection is empty with ``no_candidates`` set.
        """
        if count <= 0:
            return PracticeSelection()

        top = list(ranked_weak_areas)[:min(self.top_k, len(ranked_weak_areas))]
        top_tags = [area.tag for area in top]
        catalog = self.repository.query_practice_catalog(top_tags)
        if not catalog:
            logger.info(f"No practice candidates for areas {top_tags}")
            return PracticeSelection(problems=[], no_candidates=True)

        tag_set = set(top_tags)

        def priority(problem):
            return (-len(problem.target_areas & tag_set), problem.id)

        by_area = {}
        for area in top:
            candidates = [p for p in catalog if area.tag in p.target_areas]
            if candidates:
                by_area[area.tag] = sorted(candidates, key=priority)
        areas = [area for area in top if area.tag in by_area]

        count = min(count, len(catalog))
        slots = allocate_slots([area.weight for area in areas], count)

        distribution = self.distributions[_skill(skill_level)]
        targets = dict(zip(
            DIFFICULTY_ORDER,
            largest_remainder([distribution[d] for d in DIFFICULTY_ORDER], count),
        ))
        used = {d: 0 for d in DIFFICULTY_ORDER}

        def wanted_difficulty():
            return min(
                DIFFICULTY_ORDER,
                key=lambda d: (
                    -(targets[d] - used[d]),
                    -distribution[d],
                    DIFFICULTY_ORDER.index(d),
                ),
            )

        chosen = []       # (area_index, problem)
        chosen_ids = set()

        def take(area_index, desired) -> bool:
            candidates = by_area[areas[area_index].tag]
            for difficulty in FALLBACK_ORDER[desired]:
                for problem in candidates:
                    if problem.id in chosen_ids or problem.difficulty != difficulty.value:
                        continue
                    chosen.append((area_index, problem))
                    chosen_ids.add(problem.id)
                    used[difficulty] += 1
                    return True
            return False

        shortfall = 0
        for index, seats in enumerate(slots):
            for _ in range(seats):
                if not take(index, wanted_difficulty()):
                    shortfall += 1

        # Slots an exhausted area could not fill go to the other areas in rank order
        while shortfall > 0:
            if not any(take(index, wanted_difficulty()) for index in range(len(areas))):
                break
            shortfall -= 1

        chosen.sort(key=lambda pair: pair[0])
        problems = [problem for _, problem in chosen]
        if len(problems) >= 2 and len({p.difficulty for p in problems}) < 2:
            problems = self._force_variety(problems, chosen, areas, by_area, chosen_ids)

        return PracticeSelection(problems=problems, no_candidates=False)

    def _force_variety(self, problems, chosen, areas, by_area, chosen_ids):
        """Swap the lowest-priority pick for one of a different difficulty.

        Looks in the same area first, then in every area by rank. Leaves the
        set unchanged if no eligible problem has a different difficulty.
        """
        only = Difficulty(problems[0].difficulty)
        position = len(chosen) - 1
        area_index = chosen[position][0]
        search = [area_index] + [i for i in range(len(areas)) if i != area_index]
        for index in search:
            for difficulty in FALLBACK_ORDER[only][1:]:
                for candidate in by_area[areas[index].tag]:
                    if candidate.id in chosen_ids or candidate.difficulty != difficulty.value:
                        continue
                    replaced = list(problems)
                    replaced[position] = candidate
                    return replaced
        logger.info("Practice set has a single difficulty; catalog offers no alternative")
        return problems
