"""
In-memory event source and snapshot sink.

Used by the test suite and for ad-hoc analysis of exported event lists.
"""
from datetime import date, datetime
from typing import Dict, Iterable, List, Tuple

from habitpulse.repositories.base_repository import EventSource, HabitKey, SnapshotSink
from habitpulse.schemas import EventRecord, dedupe_events, to_records


class InMemoryEventSource(EventSource):

    def __init__(self, events: Iterable = (), members: Dict[str, List[str]] = None):
        self.events: List[EventRecord] = dedupe_events(to_records(events))
        self.members: Dict[str, List[str]] = {g: sorted(set(m)) for g, m in (members or {}).items()}

    def add(self, *events):
        self.events = dedupe_events(self.events + to_records(events))

    def _in_range(self, start_date: date, end_date: date) -> List[EventRecord]:
        return [e for e in self.events if start_date <= e.date <= end_date]

    def events_for_habit(self, habit_id, start_date, end_date, user_id=None):
        return [
            e for e in self._in_range(start_date, end_date)
            if e.habit_id == habit_id and (user_id is None or e.user_id == user_id)
        ]

    def events_for_user(self, user_id, start_date, end_date):
        return [e for e in self._in_range(start_date, end_date) if e.user_id == user_id]

    def events_for_group(self, group_id, start_date, end_date):
        return [e for e in self._in_range(start_date, end_date) if e.group_id == group_id]

    def group_members(self, group_id):
        return list(self.members.get(group_id, []))

    def group_habits(self, group_id):
        return sorted({e.habit_id for e in self.events if e.group_id == group_id})

    def habit_keys(self):
        return sorted({HabitKey(e.user_id, e.habit_id) for e in self.events})

    def habits_active_since(self, moment: datetime):
        return sorted({
            HabitKey(e.user_id, e.habit_id) for e in self.events
            if (e.updated_at is not None and e.updated_at >= moment)
            or (e.completed_at is not None and e.completed_at >= moment)
        })

    def group_ids(self):
        return sorted(g for g, m in self.members.items() if m)

    def habit_start(self, user_id, habit_id):
        return min((e.date for e in self.events if e.user_id == user_id and e.habit_id == habit_id), default=None)


class InMemorySnapshotSink(SnapshotSink):

    def __init__(self):
        self.habit_analytics: Dict[Tuple[str, str], Dict] = {}
        self.correlations: Dict[Tuple[str, str, str], Dict] = {}
        self.group_metrics: List[Dict] = []
        self.challenges: List[Dict] = []

    def upsert_habit_analytics(self, user_id, habit_id, snapshot, analyzed_at):
        self.habit_analytics[(user_id, habit_id)] = dict(snapshot, last_analyzed=analyzed_at)

    def get_habit_analytics(self, user_id, habit_id):
        snapshot = self.habit_analytics.get((user_id, habit_id))
        return dict(snapshot) if snapshot is not None else None

    def save_correlations(self, user_id, correlations, calculated_at):
        written = 0
        for result in correlations:
            self.correlations[(user_id, result.habit1_id, result.habit2_id)] = dict(
                result.to_dict(), calculated_at=calculated_at
            )
            written += 1
        return written

    def append_group_metrics(self, group_id, metrics, calculated_at):
        self.group_metrics.append(dict(metrics, group_id=group_id, calculated_at=calculated_at))

    def latest_group_metrics(self, group_id):
        rows = [m for m in self.group_metrics if m['group_id'] == group_id]
        if not rows:
            return None
        return dict(max(rows, key=lambda m: m['calculated_at']))

    def prune_group_metrics(self, before):
        kept = [m for m in self.group_metrics if m['calculated_at'] >= before]
        deleted = len(self.group_metrics) - len(kept)
        self.group_metrics = kept
        return deleted

    def prune_correlations(self, before):
        stale = [k for k, v in self.correlations.items() if v['calculated_at'] < before]
        for key in stale:
            del self.correlations[key]
        return len(stale)

    def save_challenges(self, group_id, challenges):
        rows = [dict(c.to_dict(), group_id=group_id) for c in challenges]
        self.challenges.extend(rows)
        return len(rows)
