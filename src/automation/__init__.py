"""
Automation System

Handles scheduled channel automation: due-ness evaluation, run coordination
and the periodic scheduler loop.
"""

from .scheduler import AutomationScheduler
from .run_coordinator import RunCoordinator
from .schedule_evaluator import ScheduleEvaluator
from .timezone_clock import TimeZoneClock
from .automation_models import ScheduleConfig, Channel, RunResult, TickSummary

__all__ = [
    'AutomationScheduler',
    'RunCoordinator',
    'ScheduleEvaluator',
    'TimeZoneClock',
    'ScheduleConfig',
    'Channel',
    'RunResult',
    'TickSummary'
]
