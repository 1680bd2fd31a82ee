"""
Behavioral Reinforcement Package

Stage-appropriate coaching strategies, barrier interventions and milestones.

No AI/ML - purely deterministic rules grounded in research.
"""
from habitpulse.behavioral.strategy_engine import (
    ReinforcementEngine,
    ReinforcementPlan,
    Strategy,
    StrategyType,
    StrategyCategory,
    EvidenceLevel,
    Intervention,
    InterventionType,
    Milestone,
    build_plan,
    get_reinforcement_plan,
    RESEARCH_NOTES
)

__all__ = [
    'ReinforcementEngine',
    'ReinforcementPlan',
    'Strategy',
    'StrategyType',
    'StrategyCategory',
    'EvidenceLevel',
    'Intervention',
    'InterventionType',
    'Milestone',
    'build_plan',
    'get_reinforcement_plan',
    'RESEARCH_NOTES'
]
