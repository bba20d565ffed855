"""
Academy Progress - FastAPI Backend
HTTP surface for the player and dashboard: video progress, course progress,
achievements and sync control.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional, List, Dict, Any

import asyncpg
from fastapi import FastAPI, HTTPException, Request, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_sync_config, get_config_summary
from .connectivity import ConnectivityMonitor, ConnectivityProbe
from .database import db, ensure_progress_tables, PostgresRemoteStore
from .errors import ValidationError
from .logger import setup_logger
from .models import (
    Achievement,
    AchievementProgress,
    CompleteLessonRequest,
    ConnectivityRequest,
    CourseEstimate,
    CourseStructure,
    DailyGoalRequest,
    HealthStatus,
    PlaybackSpeedRequest,
    ProgressRecord,
    ProgressUpdate,
    StudySessionRequest,
    SyncStatus,
    VideoAnalytics,
    VideoProgress,
    WatchTimeRequest,
)
from .progress_engine import ProgressEngine
from .remote import HttpRemoteStore, RemoteStore
from .storage import JsonFileStore
from .sync_coordinator import SyncCoordinator

VERSION = "1.0.0"

setup_logger()
logger = logging.getLogger(__name__)


async def _build_remote() -> RemoteStore:
    """HTTP progress API when configured, PostgreSQL otherwise."""
    config = get_sync_config()
    if config.remote_base_url:
        return HttpRemoteStore(config.remote_base_url)

    try:
        await db.connect()
        await ensure_progress_tables()
    except (OSError, asyncpg.PostgresError) as e:
        # The store reconnects on its next read or write; writes queue meanwhile
        logger.warning(f"Database not reachable at startup: {e}")
    return PostgresRemoteStore(db)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    config = get_sync_config()

    # Startup
    connectivity = ConnectivityMonitor(online=True)
    remote = await _build_remote()
    coordinator = SyncCoordinator(
        local=JsonFileStore(config.local_store_dir),
        remote=remote,
        engine=ProgressEngine(),
        connectivity=connectivity,
    )
    probe = ConnectivityProbe(connectivity) if config.health_url else None

    app.state.coordinator = coordinator
    if probe:
        await probe.start()
    await coordinator.start()

    logger.info(f"Server started (version {VERSION}): {get_config_summary()}")
    yield
    # Shutdown
    if probe:
        await probe.stop()
    await coordinator.close()
    await remote.close()
    await db.disconnect()
    logger.info("Server shutting down")


app = FastAPI(
    title="Academy Progress",
    description="Offline-first learning progress, streaks and achievements",
    version=VERSION,
    lifespan=lifespan
)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": exc.code, "message": exc.message, "details": exc.details},
    )


def get_coordinator(request: Request) -> SyncCoordinator:
    return request.app.state.coordinator


# ============================================
# HEALTH & SYNC
# ============================================

@app.get("/health", response_model=HealthStatus)
@app.get("/api/health", response_model=HealthStatus)
async def health_check(coordinator: SyncCoordinator = Depends(get_coordinator)):
    """Check API and sync health."""
    status = coordinator.get_sync_status()
    return HealthStatus(
        status="healthy",
        version=VERSION,
        remote="online" if status.is_online else "offline",
        sync=status
    )


@app.get("/api/sync/status", response_model=SyncStatus)
async def sync_status(coordinator: SyncCoordinator = Depends(get_coordinator)):
    return coordinator.get_sync_status()


@app.post("/api/sync/force")
async def force_sync(coordinator: SyncCoordinator = Depends(get_coordinator)):
    """Drain the offline queue now."""
    synced = await coordinator.force_sync()
    return {"synced": synced, "status": coordinator.get_sync_status()}


@app.post("/api/sync/pause", response_model=SyncStatus)
async def pause_sync(coordinator: SyncCoordinator = Depends(get_coordinator)):
    coordinator.pause_sync()
    return coordinator.get_sync_status()


@app.post("/api/sync/resume", response_model=SyncStatus)
async def resume_sync(coordinator: SyncCoordinator = Depends(get_coordinator)):
    await coordinator.resume_sync()
    return coordinator.get_sync_status()


@app.delete("/api/sync/errors", response_model=SyncStatus)
async def clear_sync_errors(coordinator: SyncCoordinator = Depends(get_coordinator)):
    coordinator.clear_errors()
    return coordinator.get_sync_status()


@app.post("/api/connectivity", response_model=SyncStatus)
async def set_connectivity(
    request: ConnectivityRequest,
    coordinator: SyncCoordinator = Depends(get_coordinator)
):
    """Report an online/offline transition from the client."""
    await coordinator.connectivity.set_online(request.online)
    return coordinator.get_sync_status()


# ============================================
# VIDEO PROGRESS
# ============================================

@app.post("/api/video-progress", response_model=VideoProgress)
async def save_video_progress(
    progress: Dict[str, Any],
    coordinator: SyncCoordinator = Depends(get_coordinator)
):
    """Save playback state. Only user_id, course_id and lesson_id are required."""
    return await coordinator.save_progress(progress)


@app.get("/api/video-progress/{user_id}/{course_id}/{lesson_id}", response_model=VideoProgress)
async def load_video_progress(
    user_id: str,
    course_id: str,
    lesson_id: str,
    coordinator: SyncCoordinator = Depends(get_coordinator)
):
    progress = await coordinator.load_progress(user_id, course_id, lesson_id)
    if not progress:
        raise HTTPException(status_code=404, detail="Progress not found")
    return progress


@app.post("/api/video-progress/{user_id}/{course_id}/{lesson_id}/complete", response_model=VideoProgress)
async def complete_video(
    user_id: str,
    course_id: str,
    lesson_id: str,
    coordinator: SyncCoordinator = Depends(get_coordinator)
):
    return await coordinator.mark_completed(user_id, course_id, lesson_id)


@app.get("/api/video-analytics/{user_id}/{course_id}", response_model=VideoAnalytics)
async def video_analytics(
    user_id: str,
    course_id: str,
    coordinator: SyncCoordinator = Depends(get_coordinator)
):
    return coordinator.get_video_analytics(user_id, course_id)


# ============================================
# COURSE PROGRESS
# ============================================

@app.get("/api/progress/{user_id}/{course_id}", response_model=ProgressRecord)
async def course_progress(
    user_id: str,
    course_id: str,
    coordinator: SyncCoordinator = Depends(get_coordinator)
):
    return await coordinator.get_course_progress(user_id, course_id)


@app.post("/api/progress/{user_id}/{course_id}/lessons/{lesson_id}/complete", response_model=ProgressUpdate)
async def complete_lesson(
    user_id: str,
    course_id: str,
    lesson_id: str,
    request: CompleteLessonRequest,
    coordinator: SyncCoordinator = Depends(get_coordinator)
):
    return await coordinator.complete_lesson(user_id, course_id, lesson_id, request.course)


@app.post("/api/progress/{user_id}/{course_id}/watch-time", response_model=ProgressUpdate)
async def record_watch_time(
    user_id: str,
    course_id: str,
    request: WatchTimeRequest,
    coordinator: SyncCoordinator = Depends(get_coordinator)
):
    return await coordinator.record_watch_time(
        user_id, course_id, request.minutes_watched, request.lessons_completed
    )


@app.post("/api/progress/{user_id}/{course_id}/speed", response_model=ProgressUpdate)
async def record_playback_speed(
    user_id: str,
    course_id: str,
    request: PlaybackSpeedRequest,
    coordinator: SyncCoordinator = Depends(get_coordinator)
):
    return await coordinator.record_playback_speed(user_id, course_id, request.speed)


@app.post("/api/progress/{user_id}/{course_id}/study-session", response_model=ProgressUpdate)
async def record_study_session(
    user_id: str,
    course_id: str,
    request: Optional[StudySessionRequest] = None,
    coordinator: SyncCoordinator = Depends(get_coordinator)
):
    if request is None:
        return await coordinator.record_study_session(user_id, course_id)
    return await coordinator.record_study_session(user_id, course_id, request.at, request.session_minutes)


@app.put("/api/progress/{user_id}/{course_id}/daily-goal", response_model=ProgressUpdate)
async def set_daily_goal(
    user_id: str,
    course_id: str,
    request: DailyGoalRequest,
    coordinator: SyncCoordinator = Depends(get_coordinator)
):
    return await coordinator.set_daily_goal(user_id, course_id, request.daily_goal)


@app.post("/api/progress/{user_id}/{course_id}/notes", response_model=ProgressUpdate)
async def add_note(
    user_id: str,
    course_id: str,
    coordinator: SyncCoordinator = Depends(get_coordinator)
):
    """Count a note taken on one of the course's lessons."""
    return await coordinator.add_note(user_id, course_id)


@app.post("/api/progress/{user_id}/{course_id}/bookmarks", response_model=ProgressUpdate)
async def add_bookmark(
    user_id: str,
    course_id: str,
    coordinator: SyncCoordinator = Depends(get_coordinator)
):
    return await coordinator.add_bookmark(user_id, course_id)


@app.post("/api/progress/{user_id}/{course_id}/estimate", response_model=CourseEstimate)
async def estimate_course(
    user_id: str,
    course_id: str,
    course: CourseStructure,
    coordinator: SyncCoordinator = Depends(get_coordinator)
):
    """Time remaining and dashboard metrics for a course structure."""
    record = await coordinator.get_course_progress(user_id, course_id)
    engine = coordinator.engine
    return CourseEstimate(
        time_remaining=engine.estimate_time_remaining(course, record),
        metrics=engine.calculate_course_progress(course, record),
    )


# ============================================
# ACHIEVEMENTS
# ============================================

@app.get("/api/achievements", response_model=List[Achievement])
async def list_achievements(coordinator: SyncCoordinator = Depends(get_coordinator)):
    """The achievement catalog."""
    return list(coordinator.engine.catalog)


@app.get("/api/achievements/{user_id}/{course_id}", response_model=List[AchievementProgress])
async def achievement_progress(
    user_id: str,
    course_id: str,
    coordinator: SyncCoordinator = Depends(get_coordinator)
):
    record = await coordinator.get_course_progress(user_id, course_id)
    return coordinator.engine.get_achievement_progress(record)


@app.get("/api/achievements/{user_id}/{course_id}/summary")
async def achievement_summary(
    user_id: str,
    course_id: str,
    coordinator: SyncCoordinator = Depends(get_coordinator)
):
    record = await coordinator.get_course_progress(user_id, course_id)
    return coordinator.engine.get_achievement_summary(record)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
