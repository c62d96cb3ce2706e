"""
Seat accounting for training groups.

Enrollment is always derived from the assignment ledger; the tracker keeps
no counters of its own.
"""

from typing import Any, Dict

from ..core.entities import TrainingGroup
from ..core.enums import SEAT_OCCUPYING_STATUSES


class CapacityTracker:
    """Answers how many seats of a group are taken and how many are left."""

    def __init__(self, ledger):
        self._ledger = ledger

    def current_enrollment(self, group: TrainingGroup) -> int:
        return self._ledger.count_for_group(group.id, SEAT_OCCUPYING_STATUSES)

    def available_seats(self, group: TrainingGroup) -> int:
        # A capacity lowered below enrollment reports zero, never negative
        return max(group.capacity - self.current_enrollment(group), 0)

    def has_capacity(self, group: TrainingGroup) -> bool:
        return self.available_seats(group) > 0

    def snapshot(self, group: TrainingGroup) -> Dict[str, Any]:
        enrolled = self.current_enrollment(group)
        available = max(group.capacity - enrolled, 0)
        return {
            'group_id': group.id,
            'capacity': group.capacity,
            'current_enrollment': enrolled,
            'available_seats': available,
            'is_full': available == 0,
        }
