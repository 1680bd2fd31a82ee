"""
Reinforcement Strategy Engine

Stage-appropriate coaching strategies, barrier-driven interventions and
milestone tracking for a single habit.

No AI/ML - purely deterministic rules grounded in habit formation research.
"""
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from habitpulse.helpers import metric_helpers
from habitpulse.services.formation_service import BarrierType, FormationReport, FormationService
from habitpulse.services.habit_metrics_service import FormationStage, HabitAnalyticsResult, HabitMetricsService
from habitpulse.services.timing_service import TimingAnalysis, TimingService
from habitpulse.utils import constants
from habitpulse.utils.error_handlers import degrade_on_error

logger = logging.getLogger(__name__)


class StrategyType(Enum):
    """Coaching strategies in the catalog"""
    HABIT_STACKING = "HABIT_STACKING"
    IMPLEMENTATION_INTENTION = "IMPLEMENTATION_INTENTION"
    START_SMALL = "START_SMALL"
    CONSISTENCY_FOCUS = "CONSISTENCY_FOCUS"
    ENVIRONMENTAL_DESIGN = "ENVIRONMENTAL_DESIGN"
    TRACKING_REINFORCEMENT = "TRACKING_REINFORCEMENT"
    CONTEXT_CONSISTENCY = "CONTEXT_CONSISTENCY"
    IDENTITY_REINFORCEMENT = "IDENTITY_REINFORCEMENT"
    TEMPTATION_BUNDLING = "TEMPTATION_BUNDLING"
    HABIT_EVOLUTION = "HABIT_EVOLUTION"
    MAINTENANCE_FOCUS = "MAINTENANCE_FOCUS"
    SOCIAL_MENTORING = "SOCIAL_MENTORING"
    FREQUENCY_INCREASE = "FREQUENCY_INCREASE"
    REWARD_SYSTEM = "REWARD_SYSTEM"
    TIMING_OPTIMIZATION = "TIMING_OPTIMIZATION"


class StrategyCategory(Enum):
    BEHAVIORAL = "BEHAVIORAL"
    COGNITIVE = "COGNITIVE"
    ENVIRONMENTAL = "ENVIRONMENTAL"
    MOTIVATIONAL = "MOTIVATIONAL"
    SOCIAL = "SOCIAL"


class EvidenceLevel(Enum):
    """Strength of the research behind a strategy"""
    HIGH = 3
    MEDIUM = 2
    LOW = 1


class InterventionType(Enum):
    DIFFICULTY_REDUCTION = "DIFFICULTY_REDUCTION"
    TIMING_CONSISTENCY = "TIMING_CONSISTENCY"
    GAP_PREVENTION = "GAP_PREVENTION"
    CONTEXT_STABILIZATION = "CONTEXT_STABILIZATION"
    MOTIVATION_BOOST = "MOTIVATION_BOOST"
    PROGRESS_TRACKING = "PROGRESS_TRACKING"
    AUTOMATION_FOCUS = "AUTOMATION_FOCUS"
    MAINTENANCE_STRATEGY = "MAINTENANCE_STRATEGY"


@dataclass(frozen=True)
class Strategy:
    """
    A coaching strategy with its expected effect.

    Attributes:
        strategy_type: Catalog entry (from StrategyType)
        category: Which lever the strategy pulls
        title: Short, actionable title
        description: What to do
        effectiveness: Expected effectiveness (0-1)
        evidence_level: Strength of the supporting research
        research_note: Behavioral science backing
    """
    strategy_type: StrategyType
    category: StrategyCategory
    title: str
    description: str
    effectiveness: float
    evidence_level: EvidenceLevel
    research_note: str


@dataclass(frozen=True)
class Intervention:
    intervention_type: InterventionType
    title: str
    description: str
    effectiveness: float
    trigger: str


@dataclass(frozen=True)
class Milestone:
    name: str
    description: str
    achieved: bool


@dataclass(frozen=True)
class ReinforcementPlan:
    habit_id: str
    stage: FormationStage
    stage_progress: float
    strategies: Tuple[Strategy, ...]
    interventions: Tuple[Intervention, ...]
    milestones: Tuple[Milestone, ...]

    def to_dict(self) -> Dict:
        return {
            'habit_id': self.habit_id,
            'stage': self.stage.value,
            'stage_progress': self.stage_progress,
            'strategies': [
                {
                    'type': s.strategy_type.value,
                    'category': s.category.value,
                    'title': s.title,
                    'description': s.description,
                    'effectiveness': s.effectiveness,
                    'evidence_level': s.evidence_level.name,
                    'research_note': s.research_note,
                }
                for s in self.strategies
            ],
            'interventions': [
                {
                    'type': i.intervention_type.value,
                    'title': i.title,
                    'description': i.description,
                    'effectiveness': i.effectiveness,
                    'trigger': i.trigger,
                }
                for i in self.interventions
            ],
            'milestones': [
                {'name': m.name, 'description': m.description, 'achieved': m.achieved}
                for m in self.milestones
            ],
        }


# =============================================================================
# RESEARCH NOTES (Citations for strategies)
# =============================================================================

RESEARCH_NOTES = {
    StrategyType.HABIT_STACKING: (
        "Anchoring a new behavior to an existing routine borrows the established "
        "cue of the old habit (Clear, 2018; Fogg, 2019)."
    ),
    StrategyType.IMPLEMENTATION_INTENTION: (
        "'If-then' plans specifying when and where to act roughly double "
        "follow-through rates (Gollwitzer & Sheeran, 2006)."
    ),
    StrategyType.START_SMALL: (
        "Tiny behaviors lower the motivation needed to act and build early "
        "success experiences (Fogg, 2019)."
    ),
    StrategyType.CONSISTENCY_FOCUS: (
        "Automaticity grows with repetition in a stable context; missing a single "
        "day does not derail formation (Lally et al., 2010)."
    ),
    StrategyType.ENVIRONMENTAL_DESIGN: (
        "Reducing friction for desired behaviors and adding it for undesired ones "
        "changes behavior more reliably than willpower (Wood & Neal, 2016)."
    ),
    StrategyType.TRACKING_REINFORCEMENT: (
        "Self-monitoring is among the most effective behavior change techniques "
        "(Michie et al., 2013)."
    ),
    StrategyType.CONTEXT_CONSISTENCY: (
        "Habits are cued by context; performing the behavior in the same place and "
        "time strengthens the cue-response link (Wood & Rünger, 2016)."
    ),
    StrategyType.IDENTITY_REINFORCEMENT: (
        "Behaviors aligned with self-identity are more persistent "
        "(Oyserman, 2009)."
    ),
    StrategyType.TEMPTATION_BUNDLING: (
        "Pairing a 'should' activity with a 'want' activity increases engagement "
        "(Milkman et al., 2014)."
    ),
    StrategyType.HABIT_EVOLUTION: (
        "Progressive overload keeps established routines engaging and prevents "
        "plateau (Duhigg, 2012)."
    ),
    StrategyType.MAINTENANCE_FOCUS: (
        "Relapse prevention planning protects established behaviors during "
        "context changes (Marlatt & Donovan, 2005)."
    ),
    StrategyType.SOCIAL_MENTORING: (
        "Teaching a behavior to others reinforces one's own commitment "
        "(Cialdini, 2001)."
    ),
    StrategyType.FREQUENCY_INCREASE: (
        "More frequent repetition speeds the rise of automaticity "
        "(Lally et al., 2010)."
    ),
    StrategyType.REWARD_SYSTEM: (
        "Immediate rewards strengthen the cue-routine loop while a habit is still "
        "forming (Schultz, 2006)."
    ),
    StrategyType.TIMING_OPTIMIZATION: (
        "Acting at the time of day with the highest past success leverages "
        "existing rhythms and cues (Kahneman, 2011)."
    ),
}


# =============================================================================
# CATALOG
# =============================================================================

def _strategy(strategy_type: StrategyType, category: StrategyCategory, title: str,
              description: str, effectiveness: float, evidence: EvidenceLevel) -> Strategy:
    return Strategy(strategy_type, category, title, description, effectiveness, evidence,
                    RESEARCH_NOTES[strategy_type])


STAGE_STRATEGIES = {
    FormationStage.INITIATION: (
        _strategy(StrategyType.HABIT_STACKING, StrategyCategory.BEHAVIORAL, "Stack It on an Existing Routine",
                  "Do the habit right after something you already do every day.", 0.85, EvidenceLevel.HIGH),
        _strategy(StrategyType.IMPLEMENTATION_INTENTION, StrategyCategory.COGNITIVE, "Plan When and Where",
                  "Write down: 'When X happens, I will do Y at Z.'", 0.80, EvidenceLevel.HIGH),
        _strategy(StrategyType.START_SMALL, StrategyCategory.BEHAVIORAL, "Make It Tiny",
                  "Shrink the habit to a version that takes under two minutes.", 0.90, EvidenceLevel.HIGH),
    ),
    FormationStage.LEARNING: (
        _strategy(StrategyType.CONSISTENCY_FOCUS, StrategyCategory.BEHAVIORAL, "Never Miss Twice",
                  "Focus on showing up every day; if you miss once, get back on track the next day.",
                  0.85, EvidenceLevel.HIGH),
        _strategy(StrategyType.ENVIRONMENTAL_DESIGN, StrategyCategory.ENVIRONMENTAL, "Design Your Environment",
                  "Put what you need in plain sight and remove friction from starting.", 0.80, EvidenceLevel.HIGH),
        _strategy(StrategyType.TRACKING_REINFORCEMENT, StrategyCategory.MOTIVATIONAL, "Track Every Completion",
                  "Mark each completion right away and review the week on Sundays.", 0.75, EvidenceLevel.MEDIUM),
    ),
    FormationStage.STABILITY: (
        _strategy(StrategyType.CONTEXT_CONSISTENCY, StrategyCategory.ENVIRONMENTAL, "Keep the Same Context",
                  "Do the habit at the same time and place to strengthen its cue.", 0.85, EvidenceLevel.HIGH),
        _strategy(StrategyType.IDENTITY_REINFORCEMENT, StrategyCategory.COGNITIVE, "Own the Identity",
                  "Describe yourself as the kind of person who does this habit.", 0.80, EvidenceLevel.MEDIUM),
        _strategy(StrategyType.TEMPTATION_BUNDLING, StrategyCategory.MOTIVATIONAL, "Bundle With Something You Enjoy",
                  "Pair the habit with an activity you look forward to.", 0.70, EvidenceLevel.MEDIUM),
    ),
    FormationStage.MASTERY: (
        _strategy(StrategyType.HABIT_EVOLUTION, StrategyCategory.BEHAVIORAL, "Level Up",
                  "Raise the bar slightly to keep the habit challenging.", 0.75, EvidenceLevel.MEDIUM),
        _strategy(StrategyType.MAINTENANCE_FOCUS, StrategyCategory.COGNITIVE, "Plan for Disruptions",
                  "Decide in advance how you will keep the habit during travel or illness.", 0.80, EvidenceLevel.HIGH),
        _strategy(StrategyType.SOCIAL_MENTORING, StrategyCategory.SOCIAL, "Mentor Someone",
                  "Help a friend start the same habit.", 0.70, EvidenceLevel.MEDIUM),
    ),
}

LOW_STRENGTH_STRATEGIES = (
    _strategy(StrategyType.FREQUENCY_INCREASE, StrategyCategory.BEHAVIORAL, "Repeat More Often",
              "Add an extra short repetition on days you usually skip.", 0.70, EvidenceLevel.MEDIUM),
    _strategy(StrategyType.REWARD_SYSTEM, StrategyCategory.MOTIVATIONAL, "Reward Yourself Immediately",
              "Give yourself a small reward right after each completion.", 0.65, EvidenceLevel.MEDIUM),
)

BARRIER_INTERVENTIONS = {
    BarrierType.LOW_SUCCESS_RATE: (
        InterventionType.DIFFICULTY_REDUCTION, "Reduce Difficulty",
        "Scale the habit down until you succeed most days.", 0.85,
    ),
    BarrierType.INCONSISTENT_TIMING: (
        InterventionType.TIMING_CONSISTENCY, "Fix a Time Slot",
        "Choose one time slot and protect it with a reminder.", 0.80,
    ),
    BarrierType.EXECUTION_GAPS: (
        InterventionType.GAP_PREVENTION, "Prevent Long Gaps",
        "Set a minimum version of the habit for busy days so a gap never starts.", 0.75,
    ),
    BarrierType.CONTEXT_INSTABILITY: (
        InterventionType.CONTEXT_STABILIZATION, "Stabilize the Context",
        "Tie the habit to a fixed place and preceding activity.", 0.70,
    ),
    BarrierType.MOTIVATION_DECLINE: (
        InterventionType.MOTIVATION_BOOST, "Reconnect With Your Why",
        "Revisit why this habit matters and celebrate recent progress.", 0.70,
    ),
}

STAGE_INTERVENTIONS = {
    FormationStage.INITIATION: (
        InterventionType.MOTIVATION_BOOST, "Build Early Wins",
        "Celebrate every completion during the first weeks.", 0.70,
    ),
    FormationStage.LEARNING: (
        InterventionType.PROGRESS_TRACKING, "Watch Your Progress",
        "Review your completion chart weekly to spot slips early.", 0.65,
    ),
    FormationStage.STABILITY: (
        InterventionType.AUTOMATION_FOCUS, "Let It Run on Autopilot",
        "Remove remaining decisions: same trigger, same routine, every day.", 0.75,
    ),
    FormationStage.MASTERY: (
        InterventionType.MAINTENANCE_STRATEGY, "Maintain the Gains",
        "Schedule a monthly check-in to keep the habit from drifting.", 0.80,
    ),
}


# =============================================================================
# ENGINE
# =============================================================================

class ReinforcementEngine:
    """
    Builds a reinforcement plan from already computed habit analytics.

    Example usage:
        engine = ReinforcementEngine(analytics, formation, timing)
        plan = engine.generate_plan()
        for strategy in plan.strategies:
            print(f"{strategy.title}: {strategy.description}")
    """

    def __init__(self, analytics: HabitAnalyticsResult, formation: Optional[FormationReport] = None,
                 timing: Optional[TimingAnalysis] = None):
        self.analytics = analytics
        self.formation = formation
        self.timing = timing
        self.stage = analytics.formation_stage

    def recommend_strategies(self) -> Tuple[Strategy, ...]:
        """
        Stage strategies plus strength and timing extras, ranked by
        effectiveness then evidence level, top five.
        """
        candidates: List[Strategy] = list(STAGE_STRATEGIES[self.stage])

        if self.analytics.habit_strength < constants.LOW_STRENGTH_THRESHOLD:
            candidates.extend(LOW_STRENGTH_STRATEGIES)

        if self.timing is not None and not self.timing.optimal_window.is_fallback:
            window = self.timing.optimal_window
            candidates.append(_strategy(
                StrategyType.TIMING_OPTIMIZATION, StrategyCategory.BEHAVIORAL, "Use Your Best Time",
                f"Schedule the habit between {window.start:%H:%M} and {window.end:%H:%M}, "
                f"when you succeed {window.success_rate:.0%} of the time.",
                0.80, EvidenceLevel.HIGH,
            ))

        ranked = sorted(candidates, key=lambda s: (-s.effectiveness, -s.evidence_level.value))
        return tuple(ranked[:constants.MAX_STRATEGIES])

    def recommend_interventions(self) -> Tuple[Intervention, ...]:
        """One intervention per detected barrier plus one for the stage, most effective first."""
        interventions: Dict[InterventionType, Intervention] = {}
        barriers = self.formation.barriers if self.formation is not None else ()

        for barrier in barriers:
            kind, title, description, effectiveness = BARRIER_INTERVENTIONS[barrier.barrier_type]
            interventions.setdefault(kind, Intervention(
                kind, title, description, effectiveness, trigger=barrier.barrier_type.value,
            ))

        kind, title, description, effectiveness = STAGE_INTERVENTIONS[self.stage]
        interventions.setdefault(kind, Intervention(kind, title, description, effectiveness, trigger=self.stage.value))

        return tuple(sorted(interventions.values(), key=lambda i: (-i.effectiveness, i.intervention_type.value)))

    def stage_progress(self) -> float:
        sr = self.analytics.success_rate
        c = self.analytics.consistency_score
        strength = self.analytics.habit_strength
        if self.stage == FormationStage.INITIATION:
            progress = sr
        elif self.stage == FormationStage.LEARNING:
            progress = 0.6 * sr + 0.4 * c
        elif self.stage == FormationStage.STABILITY:
            progress = 0.4 * sr + 0.4 * c + 0.2 * strength
        else:
            progress = strength
        return metric_helpers.clamp_unit(progress)

    def track_milestones(self) -> Tuple[Milestone, ...]:
        sr = self.analytics.success_rate
        c = self.analytics.consistency_score
        streak = self.analytics.current_streak

        if self.stage == FormationStage.INITIATION:
            return (
                Milestone("FIRST_WEEK", "Complete the habit on half of the days", sr >= 0.5),
                Milestone("THREE_DAY_STREAK", "3-Day Streak", streak >= 3),
            )
        if self.stage == FormationStage.LEARNING:
            return (
                Milestone("CONSISTENCY_BUILDING", "Reach 70% consistency", c >= 0.7),
                Milestone("HABIT_STRENGTH", "Reach 60% habit strength", self.analytics.habit_strength >= 0.6),
            )
        if self.stage == FormationStage.STABILITY:
            return (
                Milestone("AUTOMATICITY", "Reach 80% consistency", c >= 0.8),
                Milestone("THREE_WEEK_STREAK", "21-Day Streak", streak >= 21),
            )
        return (Milestone("MASTERY_ACHIEVED", "The habit is fully formed", True),)

    def generate_plan(self) -> ReinforcementPlan:
        plan = ReinforcementPlan(
            habit_id=self.analytics.habit_id,
            stage=self.stage,
            stage_progress=self.stage_progress(),
            strategies=self.recommend_strategies(),
            interventions=self.recommend_interventions(),
            milestones=self.track_milestones(),
        )
        logger.debug(
            f"Plan for {plan.habit_id}: stage={plan.stage.value} "
            f"{len(plan.strategies)} strategies, {len(plan.interventions)} interventions"
        )
        return plan


def build_plan(events: Iterable, habit_id: str, start_date: date, end_date: date,
               as_of: date = None) -> ReinforcementPlan:
    """
    Compute analytics, formation and timing for a habit and build its plan.

    Raises:
        InvalidDateRangeError: if end_date < start_date
    """
    events = list(events)
    analytics = HabitMetricsService.analyze_habit(events, habit_id, start_date, end_date, as_of=as_of)
    formation = FormationService.analyze_formation(events, habit_id, start_date, end_date, as_of=as_of)
    timing = TimingService.analyze_timing(events, habit_id)
    return ReinforcementEngine(analytics, formation, timing).generate_plan()


@degrade_on_error(default=dict)
def get_reinforcement_plan(events: Iterable, habit_id: str, start_date: date, end_date: date,
                           as_of: date = None) -> Dict:
    """
    Reinforcement plan as a dict for callers; an empty dict if the
    computation fails.
    """
    return build_plan(events, habit_id, start_date, end_date, as_of).to_dict()
