"""
Academy Progress
Offline-first learning progress, streaks, XP and achievements for medical courses
"""

from .models import (
    # Enums
    LessonType,
    AchievementCategory,
    AchievementRarity,
    RequirementType,
    OperationType,
    StudyWindow,
    # Course structure
    VideoChapter,
    Lesson,
    CourseModule,
    CourseStructure,
    # Progress
    DailyProgress,
    ProgressRecord,
    VideoProgress,
    ProgressMetrics,
    VideoAnalytics,
    ProgressUpdate,
    # Achievements
    Requirement,
    Achievement,
    UnlockedAchievement,
    AchievementProgress,
    # Sync
    OfflineOperation,
    SyncStatus,
)

from .errors import (
    ProgressError,
    ValidationError,
    TransientSyncError,
    RemoteUnavailableError,
    RemoteRejectedError,
    PermanentSyncError,
    LocalStorageError,
)

from .clock import Clock, SystemClock, FixedClock

from .achievements import (
    MEDICAL_ACHIEVEMENTS,
    AchievementChecker,
    build_catalog,
    get_achievement,
)

from .xp_calculator import calculate_level, calculate_lesson_xp

from .progress_engine import ProgressEngine, calculate_resume_position, format_duration

from .storage import LocalStore, MemoryStore, JsonFileStore, ProgressCodec

from .remote import RemoteStore, HttpRemoteStore

from .database import Database, PostgresRemoteStore

from .connectivity import ConnectivityMonitor, ConnectivityProbe

from .sync_coordinator import SyncCoordinator


__all__ = [
    # Models
    "LessonType",
    "AchievementCategory",
    "AchievementRarity",
    "RequirementType",
    "OperationType",
    "StudyWindow",
    "VideoChapter",
    "Lesson",
    "CourseModule",
    "CourseStructure",
    "DailyProgress",
    "ProgressRecord",
    "VideoProgress",
    "ProgressMetrics",
    "VideoAnalytics",
    "ProgressUpdate",
    "Requirement",
    "Achievement",
    "UnlockedAchievement",
    "AchievementProgress",
    "OfflineOperation",
    "SyncStatus",
    # Errors
    "ProgressError",
    "ValidationError",
    "TransientSyncError",
    "RemoteUnavailableError",
    "RemoteRejectedError",
    "PermanentSyncError",
    "LocalStorageError",
    # Clock
    "Clock",
    "SystemClock",
    "FixedClock",
    # Engine
    "MEDICAL_ACHIEVEMENTS",
    "AchievementChecker",
    "build_catalog",
    "get_achievement",
    "calculate_level",
    "calculate_lesson_xp",
    "ProgressEngine",
    "calculate_resume_position",
    "format_duration",
    # Storage & sync
    "LocalStore",
    "MemoryStore",
    "JsonFileStore",
    "ProgressCodec",
    "RemoteStore",
    "HttpRemoteStore",
    "Database",
    "PostgresRemoteStore",
    "ConnectivityMonitor",
    "ConnectivityProbe",
    "SyncCoordinator",
]
