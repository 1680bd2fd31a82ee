"""
Repositories package for HabitPulse.

- base_repository: EventSource / SnapshotSink interfaces
- django_repository: Django ORM implementations
- memory_repository: In-memory implementations
"""
from .base_repository import EventSource, SnapshotSink, HabitKey
from .memory_repository import InMemoryEventSource, InMemorySnapshotSink
