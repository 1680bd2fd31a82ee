"""
Services package for HabitPulse.

Pure analytics services, leaves first:

Core Services:
- aggregation_service: Daily/weekly/hourly buckets and streak sequences
- habit_metrics_service: Success, consistency, strength, stage, trends, patterns
- correlation_service: Pairwise habit correlation
- timing_service: Hour/day binning and optimal windows
- group_dynamics_service: Momentum, cohesion, synergy, contributors
- challenge_service: Adaptive team challenges

Supplementary Services:
- formation_service: Strength breakdown, barriers and trigger windows
- forecast_service: Success forecast, anomalies and formation timeline
"""

# Explicit imports for convenience
from .aggregation_service import AggregationService
from .habit_metrics_service import HabitMetricsService, FormationStage
from .formation_service import FormationService
from .correlation_service import CorrelationService
from .timing_service import TimingService
from .group_dynamics_service import GroupDynamicsService
from .challenge_service import ChallengeService
from .forecast_service import ForecastService

__all__ = [
    # Core
    'AggregationService',
    'HabitMetricsService',
    'FormationStage',
    'CorrelationService',
    'TimingService',
    'GroupDynamicsService',
    'ChallengeService',

    # Supplementary
    'FormationService',
    'ForecastService',
]
