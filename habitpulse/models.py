from django.db import models
from django.utils import timezone
import uuid

from habitpulse.utils.constants import FORMATION_STAGE_CHOICES


def _new_id() -> str:
    return str(uuid.uuid4())


class TimestampedModel(models.Model):
    """
    Abstract model carrying creation/update timestamps.
    Habits, users and groups live in an external store, so their ids are
    plain strings here rather than foreign keys.
    """
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class CompletionEvent(TimestampedModel):
    """One record of whether a habit was performed on a given day by a given user"""

    event_id = models.CharField(max_length=36, primary_key=True, default=_new_id, editable=False)
    habit_id = models.CharField(max_length=36, db_index=True)
    user_id = models.CharField(max_length=36, db_index=True)
    # Set for group habits; personal habits leave it empty
    group_id = models.CharField(max_length=36, null=True, blank=True, db_index=True)
    date = models.DateField()
    completed = models.BooleanField(default=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True, default='')

    class Meta:
        db_table = 'completion_events'
        ordering = ['date']
        unique_together = [['habit_id', 'user_id', 'date']]
        indexes = [
            models.Index(fields=['habit_id', 'date']),
            models.Index(fields=['user_id', 'date']),
            models.Index(fields=['group_id', 'date']),
            models.Index(fields=['completed_at']),
        ]

    def __str__(self):
        mark = 'done' if self.completed else 'missed'
        return f"{self.habit_id} {self.date} ({mark})"

    def toggle(self, at=None):
        """Flip completion and refresh the completion timestamp."""
        self.completed = not self.completed
        self.completed_at = at or timezone.now()
        self.save(update_fields=['completed', 'completed_at', 'updated_at'])
        return self


class GroupMember(models.Model):
    """Membership of a user in a habit group"""

    group_id = models.CharField(max_length=36, db_index=True)
    user_id = models.CharField(max_length=36)
    role = models.CharField(max_length=20, default='member')
    joined_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'group_members'
        unique_together = [['group_id', 'user_id']]

    def __str__(self):
        return f"{self.user_id} in {self.group_id}"


class HabitAnalytics(TimestampedModel):
    """
    Latest analytics snapshot for one user's habit.
    Overwritten wholesale on every recompute.
    """

    STAGE_CHOICES = [(stage, stage.title()) for stage in FORMATION_STAGE_CHOICES]

    analytics_id = models.CharField(max_length=36, primary_key=True, default=_new_id, editable=False)
    user_id = models.CharField(max_length=36)
    habit_id = models.CharField(max_length=36)
    success_rate = models.FloatField(default=0.0)
    consistency_score = models.FloatField(default=0.0)
    habit_strength = models.FloatField(default=0.0)
    formation_stage = models.CharField(max_length=20, choices=STAGE_CHOICES, default='INITIATION')
    current_streak = models.IntegerField(default=0)
    optimal_time_start = models.TimeField(null=True, blank=True)
    optimal_time_end = models.TimeField(null=True, blank=True)
    last_analyzed = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'habit_analytics'
        unique_together = [['user_id', 'habit_id']]
        indexes = [
            models.Index(fields=['user_id']),
            models.Index(fields=['formation_stage']),
            models.Index(fields=['last_analyzed']),
        ]
        verbose_name_plural = 'habit analytics'

    def __str__(self):
        return f"{self.habit_id}: {self.formation_stage} ({self.habit_strength:.2f})"


class HabitCorrelation(TimestampedModel):
    """Correlation between two of a user's habits, stored once per unordered pair"""

    TYPE_CHOICES = [
        ('POSITIVE', 'Positive'),
        ('NEGATIVE', 'Negative'),
        ('NEUTRAL', 'Neutral'),
        ('CAUSAL', 'Causal'),
        ('INVERSE_CAUSAL', 'Inverse causal'),
    ]

    correlation_id = models.CharField(max_length=36, primary_key=True, default=_new_id, editable=False)
    user_id = models.CharField(max_length=36)
    # habit1_id < habit2_id always holds
    habit1_id = models.CharField(max_length=36)
    habit2_id = models.CharField(max_length=36)
    coefficient = models.FloatField(default=0.0)
    correlation_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='NEUTRAL')
    confidence_level = models.FloatField(default=0.0)
    sample_size = models.IntegerField(default=0)
    calculated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'habit_correlations'
        unique_together = [['user_id', 'habit1_id', 'habit2_id']]
        indexes = [
            models.Index(fields=['user_id', 'correlation_type']),
            models.Index(fields=['coefficient']),
        ]

    def __str__(self):
        return f"{self.habit1_id} ~ {self.habit2_id}: {self.coefficient:+.2f}"


class GroupMetrics(TimestampedModel):
    """Append-only history of group dynamics; the latest row wins"""

    metrics_id = models.CharField(max_length=36, primary_key=True, default=_new_id, editable=False)
    group_id = models.CharField(max_length=36)
    group_streak = models.IntegerField(default=0)
    momentum_score = models.FloatField(default=0.0)
    synergistic_score = models.FloatField(default=0.0)
    cohesion_score = models.FloatField(default=0.0)
    calculated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'group_metrics'
        ordering = ['-calculated_at']
        get_latest_by = 'calculated_at'
        indexes = [
            models.Index(fields=['group_id', '-calculated_at']),
            models.Index(fields=['calculated_at']),
        ]
        verbose_name_plural = 'group metrics'

    def __str__(self):
        return f"{self.group_id} @ {self.calculated_at:%Y-%m-%d %H:%M}"


class TeamChallenge(TimestampedModel):
    """A generated team challenge that a group has accepted"""

    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('ACTIVE', 'Active'),
        ('COMPLETED', 'Completed'),
        ('FAILED', 'Failed'),
        ('EXPIRED', 'Expired'),
    ]

    challenge_id = models.CharField(max_length=36, primary_key=True, default=_new_id, editable=False)
    group_id = models.CharField(max_length=36, db_index=True)
    challenge_type = models.CharField(max_length=20)
    metric = models.CharField(max_length=30)
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True, default='')
    target_value = models.FloatField()
    current_value = models.FloatField(default=0.0)
    duration_days = models.IntegerField()
    difficulty_level = models.FloatField()
    priority = models.IntegerField(default=5)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='PENDING')
    rewards = models.JSONField(default=list, blank=True)

    class Meta:
        db_table = 'team_challenges'
        ordering = ['-priority', 'difficulty_level']
        indexes = [
            models.Index(fields=['group_id', 'status']),
        ]

    def __str__(self):
        return f"{self.title} ({self.status})"
