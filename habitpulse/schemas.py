"""
Input records for the analytics engines.

Engines never touch ORM rows directly: completion events are converted into
immutable ``EventRecord`` values first, either from model instances or from
raw dicts validated by ``CompletionEventSchema``.
"""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Tuple

from marshmallow import Schema, fields, post_load, validates_schema
from marshmallow import ValidationError as SchemaValidationError

from habitpulse.exceptions import ValidationError


@dataclass(frozen=True)
class EventRecord:
    """
    A single completion event.

    Attributes:
        habit_id: Habit the event belongs to
        user_id: User who recorded it
        date: Calendar day the event is for
        completed: Whether the habit was performed
        completed_at: When it was marked done (None if never timed)
        group_id: Group for group habits, else None
        notes: Free text
        updated_at: Last write time, used to pick a winner among duplicates
    """
    habit_id: str
    user_id: str
    date: date
    completed: bool = True
    completed_at: Optional[datetime] = None
    group_id: Optional[str] = None
    notes: str = ''
    updated_at: Optional[datetime] = None

    @property
    def hour(self) -> Optional[int]:
        return self.completed_at.hour if self.completed_at is not None else None


class CompletionEventSchema(Schema):
    habit_id = fields.Str(required=True)
    user_id = fields.Str(required=True)
    date = fields.Date(required=True)
    completed = fields.Bool(load_default=True)
    completed_at = fields.DateTime(load_default=None, allow_none=True)
    group_id = fields.Str(load_default=None, allow_none=True)
    notes = fields.Str(load_default='', allow_none=True)
    updated_at = fields.DateTime(load_default=None, allow_none=True)

    @validates_schema
    def check_completed_at(self, data, **kwargs):
        completed_at = data.get('completed_at')
        if completed_at is not None and completed_at.date() < data['date']:
            raise SchemaValidationError(
                'cannot precede the event date', field_name='completed_at'
            )

    @post_load
    def make_record(self, data, **kwargs):
        data['notes'] = data.get('notes') or ''
        return EventRecord(**data)


_event_schema = CompletionEventSchema()


def load_event(payload: Dict) -> EventRecord:
    """
    Validate a raw dict and build an EventRecord.

    Raises:
        ValidationError: naming the first offending field
    """
    try:
        return _event_schema.load(payload)
    except SchemaValidationError as e:
        field_name = next(iter(e.messages)) if isinstance(e.messages, dict) and e.messages else 'event'
        detail = e.messages[field_name] if isinstance(e.messages, dict) else e.messages
        raise ValidationError(field_name, str(detail))


def from_model(instance) -> EventRecord:
    """Build an EventRecord from a CompletionEvent model instance."""
    return EventRecord(
        habit_id=str(instance.habit_id),
        user_id=str(instance.user_id),
        date=instance.date,
        completed=bool(instance.completed),
        completed_at=instance.completed_at,
        group_id=str(instance.group_id) if instance.group_id else None,
        notes=instance.notes or '',
        updated_at=getattr(instance, 'updated_at', None),
    )


def to_records(events: Iterable) -> List[EventRecord]:
    """Normalise a mix of EventRecords, dicts and model instances."""
    records = []
    for event in events:
        if isinstance(event, EventRecord):
            records.append(event)
        elif isinstance(event, dict):
            records.append(load_event(event))
        else:
            records.append(from_model(event))
    return records


def dedupe_events(events: Iterable[EventRecord]) -> List[EventRecord]:
    """
    Keep one event per (habit, user, date), the most recently written.

    Events without ``updated_at`` count as older than any timestamped one;
    among equals the later position in the input wins. Output is sorted by
    date, then habit and user ids.
    """
    latest: Dict[Tuple[str, str, date], Tuple[Tuple, EventRecord]] = {}
    for position, event in enumerate(events):
        key = (event.habit_id, event.user_id, event.date)
        written = event.updated_at
        rank = (written is not None, written.timestamp() if written else 0.0, position)
        current = latest.get(key)
        if current is None or rank >= current[0]:
            latest[key] = (rank, event)
    return sorted(
        (event for _, event in latest.values()),
        key=lambda e: (e.date, e.habit_id, e.user_id),
    )
