"""
Storage interfaces for the analytics pipeline.

The engines never talk to storage. The orchestrator reads events through an
``EventSource`` and writes results through a ``SnapshotSink``; both are
swapped for in-memory versions in tests.
"""
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Dict, Iterable, List, NamedTuple, Optional

from habitpulse.schemas import EventRecord


class HabitKey(NamedTuple):
    user_id: str
    habit_id: str


class EventSource(ABC):
    """Read-only access to completion events"""

    @abstractmethod
    def events_for_habit(self, habit_id: str, start_date: date, end_date: date,
                         user_id: Optional[str] = None) -> List[EventRecord]:
        """Events of one habit (optionally one user) in an inclusive range"""

    @abstractmethod
    def events_for_user(self, user_id: str, start_date: date, end_date: date) -> List[EventRecord]:
        """Events across all of a user's habits in an inclusive range"""

    @abstractmethod
    def events_for_group(self, group_id: str, start_date: date, end_date: date) -> List[EventRecord]:
        """Events of a group's habits in an inclusive range"""

    @abstractmethod
    def group_members(self, group_id: str) -> List[str]:
        """User ids of every member, including members with no events"""

    @abstractmethod
    def group_habits(self, group_id: str) -> List[str]:
        """Habit ids that belong to the group"""

    @abstractmethod
    def habit_keys(self) -> List[HabitKey]:
        """Every (user, habit) pair with at least one event"""

    @abstractmethod
    def habits_active_since(self, moment: datetime) -> List[HabitKey]:
        """(user, habit) pairs with an event written or completed at or after moment"""

    @abstractmethod
    def group_ids(self) -> List[str]:
        """Every group with at least one member"""

    @abstractmethod
    def habit_start(self, user_id: str, habit_id: str) -> Optional[date]:
        """Date of the first event for the habit, None if it has none"""


class SnapshotSink(ABC):
    """Write access for derived analytics"""

    @abstractmethod
    def upsert_habit_analytics(self, user_id: str, habit_id: str, snapshot: Dict,
                               analyzed_at: datetime) -> None:
        """Create or wholly replace the snapshot for (user, habit)"""

    @abstractmethod
    def get_habit_analytics(self, user_id: str, habit_id: str) -> Optional[Dict]:
        """Stored snapshot or None"""

    @abstractmethod
    def save_correlations(self, user_id: str, correlations: Iterable, calculated_at: datetime) -> int:
        """Upsert correlations by canonical pair; returns rows written"""

    @abstractmethod
    def append_group_metrics(self, group_id: str, metrics: Dict, calculated_at: datetime) -> None:
        """Append one GroupMetrics history row"""

    @abstractmethod
    def latest_group_metrics(self, group_id: str) -> Optional[Dict]:
        """Most recent GroupMetrics row for the group, None if never computed"""

    @abstractmethod
    def prune_group_metrics(self, before: datetime) -> int:
        """Delete GroupMetrics rows calculated before the cutoff; returns rows deleted"""

    @abstractmethod
    def prune_correlations(self, before: datetime) -> int:
        """Delete correlations not recalculated since the cutoff; returns rows deleted"""

    @abstractmethod
    def save_challenges(self, group_id: str, challenges: Iterable) -> int:
        """Persist accepted challenges; returns rows written"""
