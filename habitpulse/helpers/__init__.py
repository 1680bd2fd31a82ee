"""
Helpers package for HabitPulse.

- metric_helpers: numpy/pandas primitives shared by the analytics engines
"""
