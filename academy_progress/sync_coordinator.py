"""
Academy Progress - Sync Coordinator
Offline-first persistence of video and course progress.

Every write lands in the local store first and is then pushed to the remote
store. When the remote is unreachable (or sync is paused) the write is kept in
a FIFO offline queue, persisted locally, and drained when connectivity returns.
Writes for one key always reach the remote in the order they were made: a
write made while an older one for the same key is queued joins the queue, and
a drain holds later writes for a key once an earlier one fails.
A queued operation that fails max_retries drain attempts is dropped and
reported through logging, the status' failed_operations and failure callbacks.
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Optional, List, Dict, Any, Callable, Mapping, Type, Union

from pydantic import BaseModel, ValidationError as SchemaError

from .clock import Clock
from .config import SyncConfig, get_sync_config
from .connectivity import ConnectivityMonitor
from .errors import (
    ValidationError,
    TransientSyncError,
    PermanentSyncError,
    LocalStorageError,
)
from .models import (
    CourseStructure,
    OfflineOperation,
    OperationType,
    ProgressRecord,
    ProgressUpdate,
    StudyWindow,
    SyncStatus,
    VideoAnalytics,
    VideoProgress,
)
from .progress_engine import ProgressEngine
from .remote import RemoteStore
from .storage import (
    LocalStore,
    ProgressCodec,
    remote_lesson_sort_key,
    remote_partition_key,
    remote_progress_sort_key,
    user_progress_key,
    video_progress_key,
    video_progress_prefix,
)

logger = logging.getLogger(__name__)

# Failures that send a write to the offline queue instead of the caller
REMOTE_FAILURES = (TransientSyncError, asyncio.TimeoutError, OSError)

FailureCallback = Callable[[PermanentSyncError], object]


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


class SyncCoordinator:
    """Offline-first bridge between the local store, the remote store and the engine."""

    def __init__(
        self,
        local: LocalStore,
        remote: RemoteStore,
        engine: Optional[ProgressEngine] = None,
        connectivity: Optional[ConnectivityMonitor] = None,
        clock: Optional[Clock] = None,
        config: Optional[SyncConfig] = None
    ):
        self.local = local
        self.remote = remote
        self.engine = engine or ProgressEngine(clock=clock)
        self.clock = clock or self.engine.clock
        self.connectivity = connectivity or ConnectivityMonitor()
        self.config = config or get_sync_config()

        self.session_id = self._new_session_id()
        self.last_sync_time: Optional[datetime] = None
        self.failed_operations: List[str] = []

        self._queue: List[OfflineOperation] = self._load_queue()
        self._sync_in_progress = False
        self._paused = False
        self._failure_callbacks: List[FailureCallback] = []

        self.running = False
        self._task: Optional[asyncio.Task] = None

        self.connectivity.subscribe(self._on_connectivity_change)

        if self._queue:
            logger.info(f"Restored {len(self._queue)} queued operations")

    def _new_session_id(self) -> str:
        millis = int(self.clock.now().timestamp() * 1000)
        return f"session_{millis}_{uuid.uuid4().hex[:9]}"

    # ============================================
    # VIDEO PROGRESS
    # ============================================

    async def save_progress(self, progress: Union[VideoProgress, Mapping[str, Any]]) -> VideoProgress:
        """Save lesson playback state. Raises ValidationError when identity fields are missing."""
        data = progress.model_dump() if isinstance(progress, VideoProgress) else dict(progress or {})
        return await self._save_video(data, OperationType.SAVE_PROGRESS)

    async def mark_completed(self, user_id: str, course_id: str, lesson_id: str) -> VideoProgress:
        """Mark a lesson video as fully watched, keeping the rest of its saved state."""
        self._require_ids(user_id=user_id, course_id=course_id, lesson_id=lesson_id)

        current = await self.load_progress(user_id, course_id, lesson_id)
        if current:
            data = current.model_dump()
        else:
            data = {"user_id": user_id, "course_id": course_id, "lesson_id": lesson_id}

        data["completed"] = True
        data["completion_percentage"] = 100.0
        data["session_id"] = self.session_id
        return await self._save_video(data, OperationType.MARK_COMPLETED)

    async def load_progress(self, user_id: str, course_id: str, lesson_id: str) -> Optional[VideoProgress]:
        """Remote copy when reachable, local copy otherwise. None when neither has one."""
        self._require_ids(user_id=user_id, course_id=course_id, lesson_id=lesson_id)
        return await self._load(
            video_progress_key(user_id, course_id, lesson_id),
            remote_partition_key(user_id),
            remote_lesson_sort_key(course_id, lesson_id),
            VideoProgress,
        )

    def get_video_analytics(self, user_id: str, course_id: str) -> VideoAnalytics:
        """Aggregate watch statistics over the locally cached lessons of a course."""
        self._require_ids(user_id=user_id, course_id=course_id)

        try:
            keys = self.local.keys(video_progress_prefix(user_id, course_id))
        except LocalStorageError as e:
            logger.warning(f"Cannot list local progress for analytics: {e.message}")
            return VideoAnalytics()

        lessons = [p for p in (self._read_local(key, VideoProgress) for key in keys) if p]
        if not lessons:
            return VideoAnalytics()

        watched = [p.last_updated for p in lessons if p.last_updated]
        return VideoAnalytics(
            total_watch_time=sum(p.watched_time for p in lessons),
            average_playback_speed=round(sum(p.playback_speed for p in lessons) / len(lessons), 2),
            completion_rate=round(sum(1 for p in lessons if p.completed) / len(lessons) * 100, 1),
            last_watched=max(watched) if watched else None,
        )

    async def _save_video(self, data: Dict[str, Any], operation_type: OperationType) -> VideoProgress:
        self._require_ids(
            user_id=data.get("user_id"),
            course_id=data.get("course_id"),
            lesson_id=data.get("lesson_id"),
        )

        fields = {key: value for key, value in data.items() if value is not None}
        fields["session_id"] = fields.get("session_id") or self.session_id
        fields["last_updated"] = self.clock.now()
        try:
            progress = VideoProgress(**fields)
        except SchemaError as e:
            raise ValidationError("Invalid progress data", details=str(e)) from e

        key = video_progress_key(progress.user_id, progress.course_id, progress.lesson_id)
        await self._persist(operation_type, key, progress)
        return progress

    # ============================================
    # COURSE PROGRESS
    # ============================================

    async def get_course_progress(self, user_id: str, course_id: str) -> ProgressRecord:
        """Stored course record, or a fresh default one for a first visit."""
        self._require_ids(user_id=user_id, course_id=course_id)
        record = await self._load(
            user_progress_key(user_id, course_id),
            remote_partition_key(user_id),
            remote_progress_sort_key(course_id),
            ProgressRecord,
        )
        return record or self.engine.create_progress(user_id, course_id)

    async def complete_lesson(
        self,
        user_id: str,
        course_id: str,
        lesson_id: str,
        course: CourseStructure
    ) -> ProgressUpdate:
        self._require_ids(user_id=user_id, course_id=course_id, lesson_id=lesson_id)

        record = await self.get_course_progress(user_id, course_id)
        self.engine.mark_lesson_completed(record, lesson_id, course)
        unlocked = self.engine.check_achievements(record, course)

        await self._save_record(record)
        return ProgressUpdate(record=record, unlocked=unlocked)

    async def record_watch_time(
        self,
        user_id: str,
        course_id: str,
        minutes_watched_today: int,
        lessons_completed_today: int = 0
    ) -> ProgressUpdate:
        """Report today's total minutes; refreshes streak, goal and engagement achievements."""
        record = await self.get_course_progress(user_id, course_id)
        self.engine.update_daily_progress(record, minutes_watched_today, lessons_completed_today)

        unlocked = self.engine.check_achievements(record)
        perfect_week = self.engine.trigger_perfect_week(record)
        if perfect_week:
            unlocked.append(perfect_week)

        await self._save_record(record)
        return ProgressUpdate(record=record, unlocked=unlocked)

    async def record_playback_speed(self, user_id: str, course_id: str, speed: float) -> ProgressUpdate:
        if speed is None or speed <= 0:
            raise ValidationError("Playback speed must be positive", details={"speed": speed})

        record = await self.get_course_progress(user_id, course_id)
        record.preferred_speed = speed

        unlocked = []
        speed_achievement = self.engine.trigger_speed_achievement(record, speed)
        if speed_achievement:
            unlocked.append(speed_achievement)

        await self._save_record(record)
        return ProgressUpdate(record=record, unlocked=unlocked)

    async def record_study_session(
        self,
        user_id: str,
        course_id: str,
        at: Optional[datetime] = None,
        session_minutes: Optional[float] = None
    ) -> ProgressUpdate:
        """Note a study session; late-night and early-morning sessions unlock their achievements.

        session_minutes, when known, feeds the average session length behind the
        long-session achievement.
        """
        at = at or self.clock.now()
        record = await self.get_course_progress(user_id, course_id)
        if session_minutes is not None:
            self.engine.record_session_duration(record, session_minutes)

        window = self.engine.study_window(at)
        unlocked = []
        if window == StudyWindow.LATE:
            result = self.engine.trigger_late_study(record)
        elif window == StudyWindow.EARLY:
            result = self.engine.trigger_early_study(record)
        else:
            result = None
        if result:
            unlocked.append(result)
        unlocked.extend(self.engine.check_achievements(record))

        record.last_activity = at
        await self._save_record(record)
        return ProgressUpdate(record=record, unlocked=unlocked)

    async def set_daily_goal(self, user_id: str, course_id: str, minutes: int) -> ProgressUpdate:
        record = await self.get_course_progress(user_id, course_id)
        self.engine.set_daily_goal(record, minutes)
        return await self._commit(record)

    async def add_note(self, user_id: str, course_id: str) -> ProgressUpdate:
        record = await self.get_course_progress(user_id, course_id)
        self.engine.add_note(record)
        return await self._commit(record)

    async def add_bookmark(self, user_id: str, course_id: str) -> ProgressUpdate:
        record = await self.get_course_progress(user_id, course_id)
        self.engine.add_bookmark(record)
        return await self._commit(record)

    async def _commit(self, record: ProgressRecord) -> ProgressUpdate:
        """Check achievements, then persist the record."""
        unlocked = self.engine.check_achievements(record)
        await self._save_record(record)
        return ProgressUpdate(record=record, unlocked=unlocked)

    async def _save_record(self, record: ProgressRecord):
        key = user_progress_key(record.user_id, record.course_id)
        await self._persist(OperationType.SAVE_COURSE_PROGRESS, key, record)

    # ============================================
    # SYNC STATE & CONTROL
    # ============================================

    def get_sync_status(self) -> SyncStatus:
        return SyncStatus(
            is_online=self.connectivity.is_online,
            pending_operation_count=len(self._queue),
            is_syncing=self._sync_in_progress,
            is_paused=self._paused,
            last_sync_time=self.last_sync_time,
            failed_operations=list(self.failed_operations),
        )

    def pending_operations(self) -> List[OfflineOperation]:
        return [operation.model_copy() for operation in self._queue]

    def on_permanent_failure(self, callback: FailureCallback) -> None:
        self._failure_callbacks.append(callback)

    async def force_sync(self) -> int:
        """Drain the queue now. Does nothing while offline."""
        if not self.connectivity.is_online:
            logger.info("Force sync skipped: offline")
            return 0
        return await self.sync_pending(force=True)

    def pause_sync(self):
        """Stop talking to the remote store; writes keep landing locally and in the queue."""
        self._paused = True
        logger.info("Sync paused")

    async def resume_sync(self) -> int:
        self._paused = False
        logger.info("Sync resumed")
        if self.connectivity.is_online and self._queue:
            return await self.sync_pending()
        return 0

    def clear_errors(self):
        self.failed_operations.clear()

    async def sync_pending(self, force: bool = False) -> int:
        """Drain the offline queue in FIFO order. Returns the number of operations synced."""
        if self._sync_in_progress or not self._queue:
            return 0
        if not self.connectivity.is_online or (self._paused and not force):
            return 0

        self._sync_in_progress = True
        synced = 0
        # Keys with an earlier failed write this pass; later writes for them must wait
        blocked_keys = set()
        logger.info(f"Syncing {len(self._queue)} offline operations")

        try:
            for operation in list(self._queue):
                if not self.connectivity.is_online:
                    logger.info("Connectivity lost during sync, stopping")
                    break
                if operation.key in blocked_keys:
                    logger.debug(f"Holding {operation.id} for {operation.key} behind an earlier failed write")
                    continue

                try:
                    await self._push(operation.payload)
                except REMOTE_FAILURES as e:
                    blocked_keys.add(operation.key)
                    operation.retry_count += 1
                    operation.last_error = _describe(e)

                    if operation.retry_count >= self.config.max_retries:
                        self._queue.remove(operation)
                        self._report_permanent_failure(operation)
                    else:
                        logger.warning(
                            f"Sync failed for {operation.key} "
                            f"(attempt {operation.retry_count}/{self.config.max_retries}): {operation.last_error}"
                        )
                else:
                    self._queue.remove(operation)
                    synced += 1

            if synced:
                self.last_sync_time = self.clock.now()
            self._save_queue()
        finally:
            self._sync_in_progress = False

        logger.info(f"Sync finished: {synced} synced, {len(self._queue)} pending")
        return synced

    async def _on_connectivity_change(self, online: bool):
        if online:
            await self.sync_pending()

    def _report_permanent_failure(self, operation: OfflineOperation):
        error = PermanentSyncError(operation.id, operation.retry_count, operation.last_error)
        logger.error(f"{error.message} (key={operation.key}, type={operation.type.value})")
        self.failed_operations.append(operation.id)

        for callback in list(self._failure_callbacks):
            try:
                callback(error)
            except Exception as e:
                logger.exception(f"Permanent failure callback raised: {e}")

    # ============================================
    # AUTO SYNC SERVICE
    # ============================================

    async def start(self):
        """Start periodic draining of the offline queue."""
        if self.running:
            return

        self.running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Auto sync started with {self.config.auto_sync_interval_seconds}s interval")

    async def stop(self):
        """Stop periodic draining."""
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Auto sync stopped")

    async def close(self):
        await self.stop()
        self.connectivity.unsubscribe(self._on_connectivity_change)

    async def _run_loop(self):
        while self.running:
            try:
                if self.connectivity.is_online and self._queue:
                    await self.sync_pending()
            except Exception as e:
                logger.error(f"Error in auto sync loop: {e}")

            await asyncio.sleep(self.config.auto_sync_interval_seconds)

    # ============================================
    # PERSISTENCE HELPERS
    # ============================================

    def _require_ids(self, **ids):
        missing = [name for name, value in ids.items() if not value]
        if missing:
            raise ValidationError(details={"missing": missing})

    def _can_sync(self) -> bool:
        return self.connectivity.is_online and not self._paused

    async def _call_remote(self, awaitable):
        return await asyncio.wait_for(awaitable, timeout=self.config.operation_timeout_seconds)

    async def _push(self, document: Dict[str, Any]):
        partition_key = remote_partition_key(document["user_id"])
        if document.get("lesson_id"):
            sort_key = remote_lesson_sort_key(document["course_id"], document["lesson_id"])
        else:
            sort_key = remote_progress_sort_key(document["course_id"])
        await self._call_remote(self.remote.put(partition_key, sort_key, document))

    async def _persist(self, operation_type: OperationType, key: str, model: BaseModel) -> bool:
        """Local write, then remote write or enqueue. Returns True if the remote write succeeded."""
        document = ProgressCodec.encode(model)
        self._write_local(key, document)

        if not self._can_sync():
            self._enqueue(operation_type, key, document, "sync paused" if self._paused else "offline")
            return False

        # Pushing now would let the queued older write land after this one
        if self._has_pending(key):
            self._enqueue(operation_type, key, document, "waiting for earlier write")
            return False

        try:
            await self._push(document)
        except REMOTE_FAILURES as e:
            logger.warning(f"Remote write failed for {key}, queueing: {_describe(e)}")
            self._enqueue(operation_type, key, document, _describe(e))
            return False

        self.last_sync_time = self.clock.now()
        return True

    async def _load(self, key: str, partition_key: str, sort_key: str, model_cls: Type[BaseModel]):
        # A queued write for this key means the local copy is newer than the remote one
        if self.connectivity.is_online and not self._has_pending(key):
            try:
                document = await self._call_remote(self.remote.get(partition_key, sort_key))
            except REMOTE_FAILURES as e:
                logger.warning(f"Remote read failed for {key}, falling back to local: {_describe(e)}")
            else:
                if document is not None:
                    try:
                        model = ProgressCodec.decode(model_cls, document)
                    except LocalStorageError as e:
                        logger.warning(f"Ignoring invalid remote document for {key}: {e.message}")
                    else:
                        self._write_local(key, ProgressCodec.encode(model))
                        return model

        return self._read_local(key, model_cls)

    def _has_pending(self, key: str) -> bool:
        return any(operation.key == key for operation in self._queue)

    def _enqueue(self, operation_type: OperationType, key: str, document: Dict[str, Any], reason: str):
        operation = OfflineOperation(
            id=str(uuid.uuid4()),
            type=operation_type,
            key=key,
            payload=document,
            created_at=self.clock.now(),
            last_error=reason,
        )
        self._queue.append(operation)
        self._save_queue()
        logger.info(f"Queued {operation_type.value} for {key} ({reason}), {len(self._queue)} pending")

    def _read_local(self, key: str, model_cls: Type[BaseModel]):
        try:
            document = self.local.get(key)
            if document is None:
                return None
            return ProgressCodec.decode(model_cls, document)
        except LocalStorageError as e:
            logger.warning(f"Local read failed for {key}: {e.message}")
            return None

    def _write_local(self, key: str, document: Any) -> bool:
        try:
            self.local.put(key, document)
            return True
        except LocalStorageError as e:
            logger.warning(f"Local write failed for {key}: {e.message}")
            return False

    def _load_queue(self) -> List[OfflineOperation]:
        try:
            return ProgressCodec.decode_many(OfflineOperation, self.local.get(self.config.offline_queue_key))
        except LocalStorageError as e:
            logger.error(f"Could not restore offline queue, starting empty: {e.message}")
            return []

    def _save_queue(self):
        self._write_local(self.config.offline_queue_key, ProgressCodec.encode_many(self._queue))
