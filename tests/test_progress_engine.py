"""Unit tests for ProgressEngine: streaks, daily history, lessons, triggers and estimates."""

import pytest
from datetime import datetime, timedelta

from academy_progress.errors import ValidationError
from academy_progress.models import (
    CourseStructure,
    DailyProgress,
    StudyWindow,
    VideoChapter,
)
from academy_progress.progress_engine import (
    calculate_resume_position,
    format_duration,
)


# ─────────────────────────────────────────────────────────────────
# create_progress
# ─────────────────────────────────────────────────────────────────


class TestCreateProgress:
    def test_defaults(self, engine, clock):
        record = engine.create_progress("user-1", "course-1")

        assert record.user_id == "user-1"
        assert record.course_id == "course-1"
        assert record.daily_goal == 30
        assert record.average_session_duration == 30
        assert record.preferred_speed == 1.0
        assert record.level == 1
        assert record.total_xp == 0
        assert record.start_date == clock.now()
        assert record.lessons_completed == []


# ─────────────────────────────────────────────────────────────────
# recompute_streak
# ─────────────────────────────────────────────────────────────────


class TestRecomputeStreak:
    def test_empty_history(self, engine):
        assert engine.recompute_streak([]) == 0

    def test_consecutive_days_including_today(self, engine, history_factory):
        assert engine.recompute_streak(history_factory([0, 1, 2])) == 3

    def test_today_not_yet_studied_keeps_streak(self, engine, history_factory):
        assert engine.recompute_streak(history_factory([1, 2])) == 2

    def test_gap_yesterday_breaks_streak(self, engine, history_factory):
        assert engine.recompute_streak(history_factory([0, 2])) == 1

    def test_missing_yesterday_and_today(self, engine, history_factory):
        assert engine.recompute_streak(history_factory([2, 3, 4])) == 0

    def test_today_with_zero_minutes_is_lenient(self, engine, clock, history_factory):
        history = history_factory([1, 2])
        history.append(DailyProgress(date=clock.today(), minutes_watched=0))

        assert engine.recompute_streak(history) == 2

    def test_unordered_history(self, engine, history_factory):
        assert engine.recompute_streak(history_factory([2, 0, 1])) == 3


# ─────────────────────────────────────────────────────────────────
# update_daily_progress
# ─────────────────────────────────────────────────────────────────


class TestUpdateDailyProgress:
    def test_creates_today_entry(self, engine, record, clock):
        engine.update_daily_progress(record, 45, 2)

        assert len(record.daily_progress_history) == 1
        today = record.daily_progress_history[0]
        assert today.date == clock.today()
        assert today.minutes_watched == 45
        assert today.lessons_completed == 2
        assert today.goal_met is True
        assert today.study_streak is True
        assert record.streak == 1
        assert record.longest_streak == 1

    def test_upsert_replaces_same_day(self, engine, record):
        engine.update_daily_progress(record, 10)
        engine.update_daily_progress(record, 25)

        assert len(record.daily_progress_history) == 1
        assert record.daily_progress_history[0].minutes_watched == 25
        assert record.daily_progress_history[0].goal_met is False

    def test_time_spent_never_decreases(self, engine, record):
        engine.update_daily_progress(record, 40)
        engine.update_daily_progress(record, 20)

        assert record.time_spent == 40
        assert record.daily_progress_history[0].minutes_watched == 20

    def test_negative_minutes_clamped(self, engine, record):
        engine.update_daily_progress(record, -15, -1)

        entry = record.daily_progress_history[0]
        assert entry.minutes_watched == 0
        assert entry.lessons_completed == 0
        assert entry.study_streak is False
        assert record.streak == 0
        assert record.time_spent == 0

    def test_history_capped_at_ninety_distinct_days(self, engine, record, clock):
        start = clock.now() - timedelta(days=94)
        for i in range(95):
            clock.set(start + timedelta(days=i))
            engine.update_daily_progress(record, 30)

        history = record.daily_progress_history
        dates = [day.date for day in history]
        assert len(history) == 90
        assert len(set(dates)) == 90
        assert dates == sorted(dates)
        assert dates[0] == (start + timedelta(days=5)).date()
        assert dates[-1] == clock.today()
        assert record.streak == 90
        assert record.longest_streak == 90
        assert record.time_spent == 95 * 30

    def test_longest_streak_survives_break(self, engine, record, clock):
        for _ in range(3):
            engine.update_daily_progress(record, 30)
            clock.advance(days=1)
        clock.advance(days=2)
        engine.update_daily_progress(record, 30)

        assert record.streak == 1
        assert record.longest_streak == 3


class TestGoalsAndCounters:
    def test_set_daily_goal(self, engine, record):
        engine.set_daily_goal(record, 45)

        assert record.daily_goal == 45

    @pytest.mark.parametrize("minutes", [0, -5, 1441, None])
    def test_daily_goal_out_of_range(self, engine, record, minutes):
        with pytest.raises(ValidationError):
            engine.set_daily_goal(record, minutes)

        assert record.daily_goal == 30

    def test_session_duration_is_running_average(self, engine, record):
        engine.record_session_duration(record, 90)
        assert record.average_session_duration == 60

        engine.record_session_duration(record, 15)
        assert record.average_session_duration == 38

    def test_negative_session_clamped(self, engine, record):
        engine.record_session_duration(record, -20)

        assert record.average_session_duration == 15

    def test_notes_and_bookmarks_count_up(self, engine, record):
        engine.add_note(record)
        engine.add_note(record)
        engine.add_bookmark(record)

        assert record.notes_count == 2
        assert record.bookmarks_count == 1

    def test_notes_unlock_detail_achievement(self, engine, record):
        for _ in range(10):
            engine.add_note(record)

        assert [u.achievement.id for u in engine.check_achievements(record)] == ["detalhista"]


# ─────────────────────────────────────────────────────────────────
# mark_lesson_completed
# ─────────────────────────────────────────────────────────────────


class TestMarkLessonCompleted:
    def test_awards_lesson_xp_by_type(self, engine, record, course):
        engine.mark_lesson_completed(record, "l1", course)
        assert record.total_xp == 60         # 30 min x 1.0 x 2

        engine.mark_lesson_completed(record, "l2", course)
        assert record.total_xp == 60 + 180   # 60 min x 1.5 x 2

        engine.mark_lesson_completed(record, "l3", course)
        assert record.total_xp == 240 + 32   # 20 min x 0.8 x 2
        assert record.level == 2

    def test_module_completed_exactly_once(self, engine, record, course):
        engine.mark_lesson_completed(record, "l1", course)
        assert record.modules_completed == []

        engine.mark_lesson_completed(record, "l2", course)
        assert record.modules_completed == ["m1"]

        engine.mark_lesson_completed(record, "l2", course)
        engine.mark_lesson_completed(record, "l3", course)
        assert record.modules_completed == ["m1", "m2"]

    def test_idempotent(self, engine, record, course):
        engine.mark_lesson_completed(record, "l1", course)
        snapshot = record.model_copy(deep=True)

        engine.mark_lesson_completed(record, "l1", course)

        assert record == snapshot

    def test_unknown_lesson_ignored(self, engine, record, course):
        engine.mark_lesson_completed(record, "not-a-lesson", course)

        assert record.lessons_completed == []
        assert record.total_xp == 0


# ─────────────────────────────────────────────────────────────────
# check_achievements
# ─────────────────────────────────────────────────────────────────


class TestCheckAchievements:
    def test_second_call_returns_nothing(self, engine, record, course):
        engine.mark_lesson_completed(record, "l1", course)

        first = engine.check_achievements(record, course)
        xp_after_first = record.total_xp
        second = engine.check_achievements(record, course)

        assert [u.achievement.id for u in first] == ["primeiro-corte"]
        assert second == []
        assert record.total_xp == xp_after_first

    def test_unlock_adds_points_and_level(self, engine, record, course):
        engine.mark_lesson_completed(record, "l1", course)
        engine.check_achievements(record, course)

        assert record.total_xp == 60 + 50
        assert record.level == 2
        assert "primeiro-corte" in record.achievements

    def test_module_and_course_completion(self, engine, record, course):
        for lesson_id in ("l1", "l2", "l3"):
            engine.mark_lesson_completed(record, lesson_id, course)

        unlocked = {u.achievement.id for u in engine.check_achievements(record, course)}

        assert unlocked == {"primeiro-corte", "especialista", "mestre-cirurgiao"}

    def test_course_completion_needs_course(self, engine, record, course):
        for lesson_id in ("l1", "l2", "l3"):
            engine.mark_lesson_completed(record, lesson_id, course)

        unlocked = {u.achievement.id for u in engine.check_achievements(record)}

        assert "mestre-cirurgiao" not in unlocked

    def test_empty_course_never_complete(self, engine, record):
        unlocked = engine.check_achievements(record, CourseStructure(id="empty"))

        assert unlocked == []

    def test_special_achievements_not_evaluated(self, engine, record, history_factory):
        record.daily_progress_history = history_factory(range(7))
        record.streak = 7

        unlocked = {u.achievement.id for u in engine.check_achievements(record)}

        assert unlocked == {"dedicado", "persistente"}
        assert "semana-perfeita" not in record.achievements

    def test_unlocked_at_uses_clock(self, engine, record, course, clock):
        engine.mark_lesson_completed(record, "l1", course)
        unlocked = engine.check_achievements(record, course)

        assert unlocked[0].unlocked_at == clock.now()


# ─────────────────────────────────────────────────────────────────
# Triggers
# ─────────────────────────────────────────────────────────────────


class TestTriggers:
    def test_perfect_week_needs_seven_days(self, engine, record, history_factory):
        record.daily_progress_history = history_factory(range(6))
        assert engine.trigger_perfect_week(record) is None

        record.daily_progress_history = history_factory(range(7))
        result = engine.trigger_perfect_week(record)

        assert result.achievement.id == "semana-perfeita"
        assert record.total_xp == 750

    def test_perfect_week_requires_goal_every_day(self, engine, record, history_factory):
        history = history_factory(range(7))
        history[3] = history[3].model_copy(update={"goal_met": False})
        record.daily_progress_history = history

        assert engine.trigger_perfect_week(record) is None

    def test_perfect_week_uses_most_recent_entries(self, engine, record, history_factory):
        old_missed = history_factory([20], minutes=5)
        old_missed[0] = old_missed[0].model_copy(update={"goal_met": False})
        record.daily_progress_history = old_missed + history_factory(range(7))

        assert engine.trigger_perfect_week(record) is not None

    def test_speed_threshold(self, engine, record):
        assert engine.trigger_speed_achievement(record, 1.5) is None

        result = engine.trigger_speed_achievement(record, 2.0)

        assert result.achievement.id == "velocista"
        assert engine.trigger_speed_achievement(record, 2.5) is None

    def test_late_and_early_idempotent(self, engine, record):
        assert engine.trigger_late_study(record).achievement.id == "noturno"
        assert engine.trigger_late_study(record) is None
        assert engine.trigger_early_study(record).achievement.id == "matutino"
        assert engine.trigger_early_study(record) is None
        assert record.total_xp == 400

    @pytest.mark.parametrize("hour,minute,expected", [
        (23, 0, StudyWindow.LATE),
        (22, 0, StudyWindow.LATE),
        (6, 59, StudyWindow.EARLY),
        (0, 30, StudyWindow.EARLY),
        (7, 0, StudyWindow.REGULAR),
        (21, 59, StudyWindow.REGULAR),
    ])
    def test_study_window(self, engine, hour, minute, expected):
        assert engine.study_window(datetime(2024, 3, 15, hour, minute)) == expected


# ─────────────────────────────────────────────────────────────────
# Estimates & metrics
# ─────────────────────────────────────────────────────────────────


class TestEstimateTimeRemaining:
    def test_full_course(self, engine, record, course):
        # 30 + 60 + 20 minutes over 30-minute sessions
        assert engine.estimate_time_remaining(course, record) == "1h 50min (≈4 sessões)"

    def test_single_session_has_no_hint(self, engine, record, course):
        engine.mark_lesson_completed(record, "l1", course)
        engine.mark_lesson_completed(record, "l2", course)

        assert engine.estimate_time_remaining(course, record) == "20min"

    def test_faster_playback(self, engine, record, course):
        record.preferred_speed = 2.0

        assert engine.estimate_time_remaining(course, record) == "55min (≈2 sessões)"

    def test_zero_speed_treated_as_normal(self, engine, record, course):
        record.preferred_speed = 0

        assert engine.estimate_time_remaining(course, record) == "1h 50min (≈4 sessões)"

    def test_course_complete(self, engine, record, course):
        for lesson_id in ("l1", "l2", "l3"):
            engine.mark_lesson_completed(record, lesson_id, course)

        assert engine.estimate_time_remaining(course, record) == "Curso concluído!"

    def test_no_curriculum(self, engine, record):
        assert engine.estimate_time_remaining(CourseStructure(id="empty"), record) == "Não disponível"


class TestCourseProgress:
    def test_metrics(self, engine, record, course, history_factory):
        engine.mark_lesson_completed(record, "l1", course)
        engine.mark_lesson_completed(record, "l2", course)
        record.daily_progress_history = history_factory([10, 3, 2, 1, 0])

        metrics = engine.calculate_course_progress(course, record)

        assert metrics.completion == 66.7
        assert metrics.lessons_completed == 2
        assert metrics.chapters_completed == 2
        assert metrics.total_minutes_this_week == 120
        assert metrics.weekly_progress == 57.1
        assert metrics.perfect_days == 5

    def test_weekly_progress_capped(self, engine, record, course, history_factory):
        record.daily_progress_history = history_factory(range(7), minutes=120)

        metrics = engine.calculate_course_progress(course, record)

        assert metrics.weekly_progress == 100.0


class TestHelpers:
    def test_format_duration(self):
        assert format_duration(125) == "2h 5min"
        assert format_duration(60) == "1h"
        assert format_duration(0.3) == "1min"
        assert format_duration(90, 3) == "1h 30min (≈3 sessões)"

    def test_resume_snaps_to_nearby_chapter(self):
        chapters = [
            VideoChapter(id="c1", start_time=0),
            VideoChapter(id="c2", start_time=600),
        ]

        assert calculate_resume_position(605, chapters) == 600
        assert calculate_resume_position(300, chapters) == 300
        assert calculate_resume_position(42, None) == 42
