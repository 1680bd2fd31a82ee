"""
Django ORM implementations of the event source and snapshot sink.

Snapshot writes run inside ``transaction.atomic`` so readers see either the
old row or the new one, never a mix.
"""
from datetime import date, datetime
from typing import Dict, Iterable, List
import logging

from django.db import DatabaseError, transaction
from django.db.models import Min, Q

from habitpulse.exceptions import SnapshotPersistenceError
from habitpulse.models import (
    CompletionEvent,
    GroupMember,
    GroupMetrics,
    HabitAnalytics,
    HabitCorrelation,
    TeamChallenge,
)
from habitpulse.repositories.base_repository import EventSource, HabitKey, SnapshotSink
from habitpulse.schemas import EventRecord, from_model

logger = logging.getLogger(__name__)

SNAPSHOT_FIELDS = (
    'success_rate',
    'consistency_score',
    'habit_strength',
    'formation_stage',
    'current_streak',
    'optimal_time_start',
    'optimal_time_end',
)

GROUP_METRIC_FIELDS = ('group_streak', 'momentum_score', 'synergistic_score', 'cohesion_score')


def _records(queryset) -> List[EventRecord]:
    return [from_model(event) for event in queryset]


# =============================================================================
# EVENT SOURCE
# =============================================================================

class DjangoEventSource(EventSource):

    def _in_range(self, start_date: date, end_date: date):
        return CompletionEvent.objects.filter(date__gte=start_date, date__lte=end_date)

    def events_for_habit(self, habit_id, start_date, end_date, user_id=None):
        queryset = self._in_range(start_date, end_date).filter(habit_id=habit_id)
        if user_id is not None:
            queryset = queryset.filter(user_id=user_id)
        return _records(queryset.order_by('date', 'user_id'))

    def events_for_user(self, user_id, start_date, end_date):
        return _records(self._in_range(start_date, end_date).filter(user_id=user_id).order_by('date', 'habit_id'))

    def events_for_group(self, group_id, start_date, end_date):
        return _records(
            self._in_range(start_date, end_date).filter(group_id=group_id).order_by('date', 'habit_id', 'user_id')
        )

    def group_members(self, group_id):
        return list(
            GroupMember.objects.filter(group_id=group_id).order_by('user_id').values_list('user_id', flat=True)
        )

    def group_habits(self, group_id):
        return list(
            CompletionEvent.objects.filter(group_id=group_id)
            .order_by('habit_id').values_list('habit_id', flat=True).distinct()
        )

    def habit_keys(self):
        rows = CompletionEvent.objects.order_by('user_id', 'habit_id').values_list('user_id', 'habit_id').distinct()
        return [HabitKey(user_id, habit_id) for user_id, habit_id in rows]

    def habits_active_since(self, moment: datetime):
        rows = (
            CompletionEvent.objects.filter(Q(updated_at__gte=moment) | Q(completed_at__gte=moment))
            .order_by('user_id', 'habit_id').values_list('user_id', 'habit_id').distinct()
        )
        return [HabitKey(user_id, habit_id) for user_id, habit_id in rows]

    def group_ids(self):
        return list(GroupMember.objects.order_by('group_id').values_list('group_id', flat=True).distinct())

    def habit_start(self, user_id, habit_id):
        return CompletionEvent.objects.filter(user_id=user_id, habit_id=habit_id).aggregate(first=Min('date'))['first']


# =============================================================================
# SNAPSHOT SINK
# =============================================================================

class DjangoSnapshotSink(SnapshotSink):

    def upsert_habit_analytics(self, user_id, habit_id, snapshot: Dict, analyzed_at: datetime):
        defaults = {name: snapshot.get(name) for name in SNAPSHOT_FIELDS if name in snapshot}
        defaults['last_analyzed'] = analyzed_at
        try:
            with transaction.atomic():
                HabitAnalytics.objects.update_or_create(user_id=user_id, habit_id=habit_id, defaults=defaults)
        except DatabaseError as e:
            logger.error(f"Error saving analytics for habit {habit_id}: {e}")
            raise SnapshotPersistenceError(f"habit {habit_id}", str(e)) from e

    def get_habit_analytics(self, user_id, habit_id):
        row = HabitAnalytics.objects.filter(user_id=user_id, habit_id=habit_id).first()
        if row is None:
            return None
        snapshot = {name: getattr(row, name) for name in SNAPSHOT_FIELDS}
        snapshot['last_analyzed'] = row.last_analyzed
        return snapshot

    def save_correlations(self, user_id, correlations: Iterable, calculated_at: datetime):
        written = 0
        try:
            with transaction.atomic():
                for result in correlations:
                    HabitCorrelation.objects.update_or_create(
                        user_id=user_id,
                        habit1_id=result.habit1_id,
                        habit2_id=result.habit2_id,
                        defaults={
                            'coefficient': result.coefficient,
                            'correlation_type': result.correlation_type.value,
                            'confidence_level': result.confidence,
                            'sample_size': result.sample_size,
                            'calculated_at': calculated_at,
                        },
                    )
                    written += 1
        except DatabaseError as e:
            logger.error(f"Error saving correlations for user {user_id}: {e}")
            raise SnapshotPersistenceError(f"correlations of {user_id}", str(e)) from e
        return written

    def append_group_metrics(self, group_id, metrics: Dict, calculated_at: datetime):
        try:
            GroupMetrics.objects.create(
                group_id=group_id,
                calculated_at=calculated_at,
                **{name: metrics[name] for name in GROUP_METRIC_FIELDS},
            )
        except DatabaseError as e:
            logger.error(f"Error saving metrics for group {group_id}: {e}")
            raise SnapshotPersistenceError(f"group {group_id}", str(e)) from e

    def latest_group_metrics(self, group_id):
        row = GroupMetrics.objects.filter(group_id=group_id).order_by('-calculated_at').first()
        if row is None:
            return None
        metrics = {name: getattr(row, name) for name in GROUP_METRIC_FIELDS}
        metrics['calculated_at'] = row.calculated_at
        return metrics

    def prune_group_metrics(self, before: datetime):
        deleted, _ = GroupMetrics.objects.filter(calculated_at__lt=before).delete()
        return deleted

    def prune_correlations(self, before: datetime):
        deleted, _ = HabitCorrelation.objects.filter(calculated_at__lt=before).delete()
        return deleted

    def save_challenges(self, group_id, challenges: Iterable):
        rows = [
            TeamChallenge(
                group_id=group_id,
                challenge_type=c.challenge_type.value,
                metric=c.metric.value,
                title=c.title,
                description=c.description,
                target_value=c.target_value,
                current_value=c.current_value,
                duration_days=c.duration_days,
                difficulty_level=c.difficulty_level,
                priority=c.priority,
                status=c.status.value,
                rewards=[{'type': r.reward_type.value, 'name': r.name, 'value': r.value} for r in c.rewards],
            )
            for c in challenges
        ]
        try:
            with transaction.atomic():
                TeamChallenge.objects.bulk_create(rows)
        except DatabaseError as e:
            logger.error(f"Error saving challenges for group {group_id}: {e}")
            raise SnapshotPersistenceError(f"challenges of {group_id}", str(e)) from e
        return len(rows)
