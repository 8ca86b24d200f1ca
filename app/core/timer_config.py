"""Per-agent session length and countdown thresholds.

Each agent type gets a fixed practice slot. The thresholds are measured in
seconds *remaining* and drive the timer status shown to the learner.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict


class TimerMode(str, Enum):
    COUNT_UP = "count_up"
    COUNTDOWN = "countdown"


class TimerStatus(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class TimerProfile:
    duration: int
    warning_threshold: int
    critical_threshold: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


DEFAULT_AGENT_TYPE = "interview_preparer"

SESSION_TIMER_CONFIG: Dict[str, TimerProfile] = {
    # Interview preparer always gets 15 minutes
    "interview_preparer": TimerProfile(
        duration=15 * 60,
        warning_threshold=5 * 60,
        critical_threshold=1 * 60,
    ),
    "english_tutor": TimerProfile(
        duration=5 * 60,
        warning_threshold=2 * 60,
        critical_threshold=1 * 60,
    ),
}


def get_timer_profile(agent_type: str = DEFAULT_AGENT_TYPE) -> TimerProfile:
    # The web app sends both "english_tutor" and "english-tutor"
    key = (agent_type or DEFAULT_AGENT_TYPE).replace("-", "_")
    return SESSION_TIMER_CONFIG.get(key, SESSION_TIMER_CONFIG[DEFAULT_AGENT_TYPE])


def status_for(remaining_seconds: float, warning_threshold: float, critical_threshold: float) -> TimerStatus:
    if remaining_seconds <= critical_threshold:
        return TimerStatus.CRITICAL
    if remaining_seconds <= warning_threshold:
        return TimerStatus.WARNING
    return TimerStatus.NORMAL


def get_timer_status(remaining_seconds: float, agent_type: str = DEFAULT_AGENT_TYPE) -> TimerStatus:
    profile = get_timer_profile(agent_type)
    return status_for(remaining_seconds, profile.warning_threshold, profile.critical_threshold)


def format_time(seconds: float) -> str:
    """Format a second count as ``MM:SS``."""
    total = max(0, int(seconds))
    mins, secs = divmod(total, 60)
    return f"{mins:02d}:{secs:02d}"
