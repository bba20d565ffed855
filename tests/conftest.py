"""Shared test fixtures for academy progress tests."""

import os

# Keep test runs from writing rotating log files
os.environ.setdefault("LOG_FILE_LOGGING", "false")

import pytest
from datetime import datetime, timedelta

from academy_progress.clock import FixedClock
from academy_progress.config import GamificationConfig, SyncConfig
from academy_progress.connectivity import ConnectivityMonitor
from academy_progress.models import (
    CourseModule,
    CourseStructure,
    DailyProgress,
    Lesson,
    VideoChapter,
)
from academy_progress.progress_engine import ProgressEngine
from academy_progress.storage import MemoryStore
from academy_progress.sync_coordinator import SyncCoordinator

from fakes import FakeRemoteStore


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 3, 15, 12, 0, 0))


@pytest.fixture
def gamification_config():
    return GamificationConfig(_env_file=None)


@pytest.fixture
def sync_config():
    return SyncConfig(_env_file=None, max_retries=3, operation_timeout_seconds=1.0)


@pytest.fixture
def engine(clock, gamification_config):
    return ProgressEngine(clock=clock, config=gamification_config)


@pytest.fixture
def record(engine):
    return engine.create_progress("user-1", "course-1")


@pytest.fixture
def local_store():
    return MemoryStore()


@pytest.fixture
def remote_store():
    return FakeRemoteStore()


@pytest.fixture
def connectivity():
    return ConnectivityMonitor(online=True)


@pytest.fixture
def coordinator(local_store, remote_store, engine, connectivity, clock, sync_config):
    return SyncCoordinator(
        local=local_store,
        remote=remote_store,
        engine=engine,
        connectivity=connectivity,
        clock=clock,
        config=sync_config,
    )


@pytest.fixture
def course():
    """Two modules: m1 (video + surgery lesson), m2 (one e-book lesson)."""
    return CourseStructure(
        id="course-1",
        title="Cirurgia Básica",
        modules=[
            CourseModule(
                id="m1",
                title="Fundamentos",
                lessons=[
                    Lesson(id="l1", title="Anatomia", type="video", duration="30min"),
                    Lesson(
                        id="l2",
                        title="Sutura",
                        type="cirurgia",
                        duration="1h",
                        chapters=[
                            VideoChapter(id="c1", title="Preparo", start_time=0, end_time=600),
                            VideoChapter(id="c2", title="Técnica", start_time=600, end_time=3600),
                        ],
                    ),
                ],
            ),
            CourseModule(
                id="m2",
                title="Leitura",
                lessons=[
                    Lesson(id="l3", title="Atlas", type="ebook", estimated_duration=20),
                ],
            ),
        ],
    )


def make_day(day, minutes=30, goal=30) -> DailyProgress:
    return DailyProgress(
        date=day,
        minutes_watched=minutes,
        goal_met=minutes >= goal,
        study_streak=minutes > 0,
    )


@pytest.fixture
def history_factory(clock):
    """Build a history from day offsets relative to today (0 = today, 1 = yesterday)."""
    def build(offsets, minutes=30):
        today = clock.today()
        return [make_day(today - timedelta(days=offset), minutes) for offset in offsets]
    return build
