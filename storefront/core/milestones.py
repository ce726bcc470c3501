# storefront/core/milestones.py

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, List, Mapping


@dataclass(frozen=True)
class Milestone:
    points: int
    reward_value: Decimal
    reward_type: str = "VOUCHER"


class MilestoneTable:
    """
    Read-only, ascending table of point thresholds and their voucher values.
    Built once at startup and handed to the services; values are configured
    per threshold and are not derived from the points.
    """

    def __init__(self, milestones: Iterable[Milestone]):
        ordered = sorted(milestones, key=lambda m: m.points)
        if not ordered:
            raise ValueError("Milestone table must contain at least one threshold.")
        seen = set()
        for milestone in ordered:
            if milestone.points <= 0:
                raise ValueError(f"Milestone points must be positive, got {milestone.points}.")
            if milestone.reward_value <= 0:
                raise ValueError(f"Reward for {milestone.points} points must be positive.")
            if milestone.points in seen:
                raise ValueError(f"Duplicate milestone threshold {milestone.points}.")
            seen.add(milestone.points)
        self._milestones = tuple(ordered)

    def __iter__(self):
        return iter(self._milestones)

    def __len__(self) -> int:
        return len(self._milestones)

    def reached(self, current_points: int) -> List[Milestone]:
        """Thresholds at or below the balance, ascending."""
        return [m for m in self._milestones if m.points <= current_points]

    def next_after(self, current_points: int) -> Milestone | None:
        return next((m for m in self._milestones if current_points < m.points), None)

    def current(self, current_points: int) -> Milestone | None:
        reached = self.reached(current_points)
        return reached[-1] if reached else None


def load_milestone_table(raw: Iterable[Mapping[str, Any]]) -> MilestoneTable:
    """Builds the table from settings.MILESTONE_SETTINGS (list of {points, reward_value})."""
    return MilestoneTable(
        Milestone(points=int(item["points"]), reward_value=Decimal(str(item["reward_value"])))
        for item in raw
    )
