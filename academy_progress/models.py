"""
Academy Progress - Pydantic Models (v2 syntax)
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field


# ============================================
# ENUMS
# ============================================

class LessonType(str, Enum):
    VIDEO = "video"
    EBOOK = "ebook"
    CIRURGIA = "cirurgia"   # practical / surgical procedure


class AchievementCategory(str, Enum):
    PROGRESS = "progress"
    ENGAGEMENT = "engagement"
    SOCIAL = "social"
    SPECIAL = "special"
    TIME = "time"
    QUALITY = "quality"


class AchievementRarity(str, Enum):
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class RequirementType(str, Enum):
    LESSONS_COMPLETED = "lessons_completed"
    STREAK_DAYS = "streak_days"
    NOTES_TAKEN = "notes_taken"
    QUIZ_SCORE = "quiz_score"
    CONTINUOUS_STUDY = "continuous_study"
    LATE_STUDY = "late_study"
    EARLY_STUDY = "early_study"
    PERFECT_WEEK = "perfect_week"
    SPEED_LEARNING = "speed_learning"
    THOROUGH_STUDY = "thorough_study"
    MODULE_COMPLETE = "module_complete"
    COURSE_COMPLETE = "course_complete"


class OperationType(str, Enum):
    SAVE_PROGRESS = "save_progress"
    MARK_COMPLETED = "mark_completed"
    SAVE_COURSE_PROGRESS = "save_course_progress"


class StudyWindow(str, Enum):
    LATE = "late"
    EARLY = "early"
    REGULAR = "regular"


# ============================================
# COURSE STRUCTURE
# ============================================

class VideoChapter(BaseModel):
    id: str
    title: str = ""
    start_time: float = 0.0     # seconds
    end_time: float = 0.0


class Lesson(BaseModel):
    id: Optional[str] = None
    title: str = ""
    type: str = LessonType.VIDEO.value
    duration: Optional[str] = None              # "1h 30min", "45min"
    estimated_duration: Optional[int] = None    # minutes, wins over duration
    chapters: List[VideoChapter] = Field(default_factory=list)


class CourseModule(BaseModel):
    id: Optional[str] = None
    title: str = ""
    lessons: List[Lesson] = Field(default_factory=list)


class CourseStructure(BaseModel):
    id: str
    title: str = ""
    modules: List[CourseModule] = Field(default_factory=list)

    def lesson_ids(self) -> List[str]:
        return [lesson.id for module in self.modules for lesson in module.lessons if lesson.id]

    def find_lesson(self, lesson_id: str) -> Optional[Lesson]:
        for module in self.modules:
            for lesson in module.lessons:
                if lesson.id == lesson_id:
                    return lesson
        return None


# ============================================
# PROGRESS MODELS
# ============================================

class DailyProgress(BaseModel):
    date: date
    minutes_watched: int = 0
    lessons_completed: int = 0
    goal_met: bool = False
    study_streak: bool = False


class ProgressRecord(BaseModel):
    """Accumulated progress of one user in one course."""

    user_id: str
    course_id: str
    lessons_completed: List[str] = Field(default_factory=list)
    modules_completed: List[str] = Field(default_factory=list)
    time_spent: int = 0
    streak: int = 0
    longest_streak: int = 0
    last_activity: Optional[datetime] = None
    daily_goal: int = 30
    daily_progress_history: List[DailyProgress] = Field(default_factory=list)
    achievements: List[str] = Field(default_factory=list)
    total_xp: int = 0
    level: int = 1
    notes_count: int = 0
    bookmarks_count: int = 0
    average_session_duration: float = 30.0
    preferred_speed: float = 1.0
    start_date: Optional[datetime] = None


class VideoProgress(BaseModel):
    """Playback state of one lesson video."""

    user_id: str
    course_id: str
    lesson_id: str
    current_time: float = 0.0
    duration: float = 0.0
    completion_percentage: float = 0.0
    watched_time: float = 0.0
    last_updated: Optional[datetime] = None
    completed: bool = False
    chapters_watched: List[str] = Field(default_factory=list)
    playback_speed: float = 1.0
    session_id: str = ""
    device_type: str = "unknown"
    user_agent: str = ""


# ============================================
# ACHIEVEMENT MODELS
# ============================================

class Requirement(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: RequirementType
    target: float


class Achievement(BaseModel):
    """Catalog entry. Shared reference data, never mutated."""
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str
    icon: str
    category: AchievementCategory
    rarity: AchievementRarity
    points: int
    requirement: Requirement


class UnlockedAchievement(BaseModel):
    achievement: Achievement
    unlocked_at: datetime


class AchievementProgress(BaseModel):
    achievement: Achievement
    current: float
    target: float
    percentage: float
    is_unlocked: bool


# ============================================
# SYNC MODELS
# ============================================

class OfflineOperation(BaseModel):
    id: str
    type: OperationType
    key: str
    payload: Dict[str, Any]
    created_at: datetime
    retry_count: int = 0
    last_error: Optional[str] = None


class SyncStatus(BaseModel):
    is_online: bool
    pending_operation_count: int
    is_syncing: bool
    is_paused: bool = False
    last_sync_time: Optional[datetime] = None
    failed_operations: List[str] = Field(default_factory=list)


# ============================================
# DERIVED VIEWS
# ============================================

class ProgressMetrics(BaseModel):
    completion: float                   # 0-100
    time_spent: int
    average_watch_speed: float
    chapters_completed: int
    lessons_completed: int
    streak: int
    last_activity: Optional[datetime] = None
    daily_goal: int
    weekly_progress: float              # 0-100
    total_minutes_this_week: int
    perfect_days: int


class VideoAnalytics(BaseModel):
    total_watch_time: float = 0.0
    average_playback_speed: float = 1.0
    completion_rate: float = 0.0
    last_watched: Optional[datetime] = None


class ProgressUpdate(BaseModel):
    """Result of a course-level progress event."""
    record: ProgressRecord
    unlocked: List[UnlockedAchievement] = Field(default_factory=list)


# ============================================
# REQUEST MODELS
# ============================================

class WatchTimeRequest(BaseModel):
    minutes_watched: int
    lessons_completed: int = 0


class PlaybackSpeedRequest(BaseModel):
    speed: float


class CompleteLessonRequest(BaseModel):
    course: CourseStructure


class ConnectivityRequest(BaseModel):
    online: bool


class StudySessionRequest(BaseModel):
    at: Optional[datetime] = None
    session_minutes: Optional[float] = None


class DailyGoalRequest(BaseModel):
    daily_goal: int


class CourseEstimate(BaseModel):
    time_remaining: str
    metrics: ProgressMetrics


class HealthStatus(BaseModel):
    status: str
    version: str
    remote: str
    sync: SyncStatus
