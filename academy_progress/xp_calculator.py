"""
XP Calculator - XP awards and level derivation.

Lesson XP scales with lesson length and lesson type; level is derived from the
cumulative XP total with a square-root curve so each level costs more than the
previous one.
"""

import logging
import math
import re
from typing import Optional

from .config import get_gamification_config, GamificationConfig
from .models import Lesson

logger = logging.getLogger(__name__)

_HOURS_RE = re.compile(r"(\d+)\s*h")
_MINUTES_RE = re.compile(r"(\d+)\s*min")


def calculate_level(total_xp: int) -> int:
    """Level = floor(sqrt(total_xp / 100)) + 1. Negative totals count as zero."""
    return math.floor(math.sqrt(max(0, total_xp) / 100)) + 1


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def parse_duration_to_minutes(duration: Optional[str]) -> int:
    """Parse strings like "1h 30min", "45min" or "2h". Unparseable input is 0."""
    if not duration:
        return 0
    hour_match = _HOURS_RE.search(duration)
    minute_match = _MINUTES_RE.search(duration)

    hours = int(hour_match.group(1)) if hour_match else 0
    minutes = int(minute_match.group(1)) if minute_match else 0
    return hours * 60 + minutes


def lesson_duration_minutes(lesson: Lesson, config: Optional[GamificationConfig] = None) -> int:
    config = config or get_gamification_config()
    if lesson.estimated_duration is not None:
        return max(0, lesson.estimated_duration)
    return parse_duration_to_minutes(lesson.duration or f"{config.default_lesson_minutes}min")


def lesson_type_multiplier(lesson_type: str, config: Optional[GamificationConfig] = None) -> float:
    config = config or get_gamification_config()
    return config.lesson_type_multipliers.get(lesson_type, 1.0)


def calculate_lesson_xp(lesson: Lesson, config: Optional[GamificationConfig] = None) -> int:
    """XP for completing a lesson: round(minutes x type multiplier x XP per minute)."""
    config = config or get_gamification_config()
    minutes = lesson_duration_minutes(lesson, config)
    multiplier = lesson_type_multiplier(lesson.type, config)
    xp = round_half_up(minutes * multiplier * config.xp_per_minute)
    logger.debug(f"Lesson XP lesson={lesson.id}, minutes={minutes}, type={lesson.type}, xp={xp}")
    return xp
