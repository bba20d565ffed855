"""
Academy Progress - Progress Engine
Streaks, daily goals, lesson/module completion, XP and achievement unlocking.

The engine does no I/O. Operations take a ProgressRecord, update it in place
and return it (or the newly unlocked achievements), so callers decide when and
where the result gets persisted.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Optional, List, Iterable

from .achievements import (
    AchievementChecker,
    MEDICAL_ACHIEVEMENTS,
    LATE_STUDY_ACHIEVEMENT,
    EARLY_STUDY_ACHIEVEMENT,
    SPEED_ACHIEVEMENT,
    PERFECT_WEEK_ACHIEVEMENT,
)
from .clock import Clock, SystemClock
from .config import GamificationConfig, get_gamification_config
from .errors import ValidationError
from .models import (
    Achievement,
    AchievementProgress,
    CourseStructure,
    DailyProgress,
    ProgressMetrics,
    ProgressRecord,
    StudyWindow,
    UnlockedAchievement,
    VideoChapter,
)
from .xp_calculator import (
    calculate_lesson_xp,
    calculate_level,
    lesson_duration_minutes,
    round_half_up,
)

logger = logging.getLogger(__name__)

COURSE_COMPLETE_LABEL = "Curso concluído!"
NOT_AVAILABLE_LABEL = "Não disponível"
RESUME_SNAP_SECONDS = 10
MAX_DAILY_GOAL = 1440


class ProgressEngine:
    """Derives streaks, XP, level and achievements from a progress record."""

    def __init__(
        self,
        catalog: Iterable[Achievement] = MEDICAL_ACHIEVEMENTS,
        clock: Optional[Clock] = None,
        config: Optional[GamificationConfig] = None
    ):
        self.clock = clock or SystemClock()
        self.config = config or get_gamification_config()
        self.checker = AchievementChecker(catalog, self.clock)

    @property
    def catalog(self):
        return self.checker.catalog

    def create_progress(self, user_id: str, course_id: str) -> ProgressRecord:
        """Default record for a learner's first interaction with a course."""
        now = self.clock.now()
        return ProgressRecord(
            user_id=user_id,
            course_id=course_id,
            daily_goal=self.config.default_daily_goal,
            average_session_duration=self.config.default_session_minutes,
            last_activity=now,
            start_date=now,
        )

    # ============================================
    # STREAKS & DAILY PROGRESS
    # ============================================

    def recompute_streak(self, daily_history: List[DailyProgress]) -> int:
        """Count consecutive studied days ending today or yesterday.

        Today is lenient: a day that hasn't been studied yet neither counts nor
        breaks the streak. That includes an entry for today recorded with
        study_streak False (0 minutes so far): it is skipped, not treated as a
        gap. Any earlier day without study ends the walk.
        """
        if not daily_history:
            return 0

        studied_days = {entry.date for entry in daily_history if entry.study_streak}
        today = self.clock.today()

        streak = 1 if today in studied_days else 0
        offset = 1
        while today - timedelta(days=offset) in studied_days:
            streak += 1
            offset += 1

        return streak

    def update_daily_progress(
        self,
        record: ProgressRecord,
        minutes_watched_today: int,
        lessons_completed_today: int = 0
    ) -> ProgressRecord:
        """Upsert today's entry, trim history and refresh the streak."""
        today = self.clock.today()
        minutes = max(0, int(minutes_watched_today or 0))
        lessons = max(0, int(lessons_completed_today or 0))

        entry = DailyProgress(
            date=today,
            minutes_watched=minutes,
            lessons_completed=lessons,
            goal_met=minutes >= record.daily_goal,
            study_streak=minutes > 0,
        )

        previous_minutes = 0
        history = []
        for day in record.daily_progress_history:
            if day.date == today:
                previous_minutes = max(previous_minutes, day.minutes_watched)
            else:
                history.append(day)
        history.append(entry)

        history.sort(key=lambda day: day.date)
        record.daily_progress_history = history[-self.config.history_days:]

        # time_spent never decreases, even if today's total is reported lower
        record.time_spent += max(0, minutes - previous_minutes)

        record.streak = self.recompute_streak(record.daily_progress_history)
        record.longest_streak = max(record.longest_streak, record.streak)
        record.last_activity = self.clock.now()

        return record

    def get_weekly_minutes(self, daily_history: List[DailyProgress]) -> int:
        one_week_ago = self.clock.today() - timedelta(days=7)
        return sum(day.minutes_watched for day in daily_history if day.date >= one_week_ago)

    # ============================================
    # GOALS, SESSIONS, NOTES & BOOKMARKS
    # ============================================

    def set_daily_goal(self, record: ProgressRecord, minutes: int) -> ProgressRecord:
        """Change the daily goal. Days already recorded keep their goal_met flag."""
        if minutes is None or not 1 <= minutes <= MAX_DAILY_GOAL:
            raise ValidationError(
                f"Daily goal must be between 1 and {MAX_DAILY_GOAL} minutes",
                details={"daily_goal": minutes}
            )
        record.daily_goal = int(minutes)
        return record

    def record_session_duration(self, record: ProgressRecord, minutes: float) -> ProgressRecord:
        """Blend a finished session into the running average session length."""
        minutes = max(0, minutes or 0)
        record.average_session_duration = round_half_up((record.average_session_duration + minutes) / 2)
        record.last_activity = self.clock.now()
        return record

    def add_note(self, record: ProgressRecord) -> ProgressRecord:
        record.notes_count += 1
        record.last_activity = self.clock.now()
        return record

    def add_bookmark(self, record: ProgressRecord) -> ProgressRecord:
        record.bookmarks_count += 1
        record.last_activity = self.clock.now()
        return record

    # ============================================
    # LESSONS & MODULES
    # ============================================

    def mark_lesson_completed(
        self,
        record: ProgressRecord,
        lesson_id: str,
        course: CourseStructure
    ) -> ProgressRecord:
        """Complete a lesson once: derive finished modules and award lesson XP."""
        if not lesson_id or lesson_id in record.lessons_completed:
            return record

        lesson = course.find_lesson(lesson_id)
        if lesson is None:
            logger.debug(f"Ignoring completion of lesson {lesson_id}: not in course {course.id}")
            return record

        record.lessons_completed.append(lesson_id)
        completed = set(record.lessons_completed)

        for module in course.modules:
            lesson_ids = [item.id for item in module.lessons]
            if not lesson_ids or not module.id:
                continue
            if all(lid in completed for lid in lesson_ids) and module.id not in record.modules_completed:
                record.modules_completed.append(module.id)
                logger.info(f"Module completed user={record.user_id}, module={module.id}")

        record.total_xp += calculate_lesson_xp(lesson, self.config)
        record.level = calculate_level(record.total_xp)
        record.last_activity = self.clock.now()
        return record

    # ============================================
    # ACHIEVEMENTS
    # ============================================

    def check_achievements(
        self,
        record: ProgressRecord,
        course: Optional[CourseStructure] = None,
        catalog: Optional[Iterable[Achievement]] = None
    ) -> List[UnlockedAchievement]:
        """Unlock every qualifying achievement. Re-running on the same record returns []."""
        checker = self.checker if catalog is None else AchievementChecker(catalog, self.clock)
        return checker.check_all(record, course)

    def trigger_late_study(self, record: ProgressRecord) -> Optional[UnlockedAchievement]:
        return self.checker.award_by_id(record, LATE_STUDY_ACHIEVEMENT)

    def trigger_early_study(self, record: ProgressRecord) -> Optional[UnlockedAchievement]:
        return self.checker.award_by_id(record, EARLY_STUDY_ACHIEVEMENT)

    def trigger_speed_achievement(self, record: ProgressRecord, speed: float) -> Optional[UnlockedAchievement]:
        if speed is None or speed < self.config.speed_achievement_threshold:
            return None
        return self.checker.award_by_id(record, SPEED_ACHIEVEMENT)

    def trigger_perfect_week(self, record: ProgressRecord) -> Optional[UnlockedAchievement]:
        """Needs exactly N recorded most-recent days, all with the goal met. Gaps are not zero-filled."""
        days = self.config.perfect_week_days
        last_week = sorted(record.daily_progress_history, key=lambda day: day.date)[-days:]
        if len(last_week) != days or not all(day.goal_met for day in last_week):
            return None
        return self.checker.award_by_id(record, PERFECT_WEEK_ACHIEVEMENT)

    def study_window(self, at: Optional[datetime] = None) -> StudyWindow:
        """Classify a wall-clock time as late-night, early-morning or regular study."""
        hour = (at or self.clock.now()).hour
        if hour >= self.config.late_study_hour:
            return StudyWindow.LATE
        if hour < self.config.early_study_hour:
            return StudyWindow.EARLY
        return StudyWindow.REGULAR

    def get_achievement_progress(
        self,
        record: ProgressRecord,
        course: Optional[CourseStructure] = None
    ) -> List[AchievementProgress]:
        return self.checker.get_achievement_progress(record, course)

    def get_achievement_summary(self, record: ProgressRecord) -> dict:
        return self.checker.get_achievement_summary(record)

    # ============================================
    # ESTIMATES & METRICS
    # ============================================

    def estimate_time_remaining(self, course: CourseStructure, record: ProgressRecord) -> str:
        """Human-readable time left in a course at the learner's pace."""
        all_lessons = [lesson for module in course.modules for lesson in module.lessons]
        if not all_lessons:
            return NOT_AVAILABLE_LABEL

        completed = set(record.lessons_completed)
        remaining_minutes = sum(
            lesson_duration_minutes(lesson, self.config)
            for lesson in all_lessons
            if lesson.id not in completed
        )

        if remaining_minutes == 0:
            return COURSE_COMPLETE_LABEL

        speed = record.preferred_speed if record.preferred_speed and record.preferred_speed > 0 else 1
        adjusted_minutes = remaining_minutes / speed

        session_minutes = record.average_session_duration
        if not session_minutes or session_minutes <= 0:
            session_minutes = self.config.default_session_minutes
        estimated_sessions = math.ceil(adjusted_minutes / session_minutes)

        return format_duration(adjusted_minutes, estimated_sessions)

    def calculate_course_progress(self, course: CourseStructure, record: ProgressRecord) -> ProgressMetrics:
        lesson_ids = course.lesson_ids()
        completed = set(record.lessons_completed)
        completed_lessons = len(completed)
        completion = min(completed_lessons / len(lesson_ids) * 100, 100.0) if lesson_ids else 0.0

        weekly_minutes = self.get_weekly_minutes(record.daily_progress_history)
        weekly_goal = record.daily_goal * 7
        weekly_progress = min(weekly_minutes / weekly_goal * 100, 100.0) if weekly_goal > 0 else 0.0

        chapters_completed = sum(
            len(lesson.chapters)
            for module in course.modules
            for lesson in module.lessons
            if lesson.id in completed
        )

        return ProgressMetrics(
            completion=round(completion, 1),
            time_spent=record.time_spent,
            average_watch_speed=record.preferred_speed or 1,
            chapters_completed=chapters_completed,
            lessons_completed=completed_lessons,
            streak=record.streak,
            last_activity=record.last_activity,
            daily_goal=record.daily_goal,
            weekly_progress=round(weekly_progress, 1),
            total_minutes_this_week=weekly_minutes,
            perfect_days=sum(1 for day in record.daily_progress_history if day.goal_met),
        )


# ============================================
# HELPERS
# ============================================

def format_duration(minutes: float, sessions: Optional[int] = None) -> str:
    """Format minutes as "2h 5min", with an "(≈N sessões)" hint for multi-session estimates."""
    total = max(1, round_half_up(minutes))
    hours, mins = divmod(total, 60)

    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if mins > 0:
        parts.append(f"{mins}min")
    result = " ".join(parts)

    if sessions and sessions > 1:
        result += f" (≈{sessions} sessões)"

    return result


def calculate_resume_position(last_position: float, chapters: Optional[List[VideoChapter]] = None) -> float:
    """Resume from a chapter start when the saved position is within a few seconds of it."""
    if not chapters:
        return last_position

    for chapter in chapters:
        if abs(chapter.start_time - last_position) <= RESUME_SNAP_SECONDS:
            return chapter.start_time
    return last_position
