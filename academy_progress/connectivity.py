"""
Academy Progress - Connectivity
Online/offline state with transition listeners, and a background probe that feeds it.
"""

import asyncio
import inspect
import logging
from typing import Callable, List, Optional

import httpx

from .config import get_sync_config

logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[bool], object]


class ConnectivityMonitor:
    """Holds the current connectivity state.

    Listeners are called (and awaited, when they return an awaitable) only on
    actual transitions; setting the same state twice notifies nobody.
    """

    def __init__(self, online: bool = True):
        self._online = online
        self._listeners: List[ConnectivityListener] = []

    @property
    def is_online(self) -> bool:
        return self._online

    def subscribe(self, listener: ConnectivityListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: ConnectivityListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def set_online(self, online: bool) -> bool:
        """Update the state. Returns True if it changed."""
        if online == self._online:
            return False

        self._online = online
        logger.info(f"Connectivity changed: {'online' if online else 'offline'}")

        for listener in list(self._listeners):
            try:
                result = listener(online)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.exception(f"Connectivity listener failed: {e}")

        return True


class ConnectivityProbe:
    """Background service that polls a health URL and updates a ConnectivityMonitor."""

    def __init__(
        self,
        monitor: ConnectivityMonitor,
        url: Optional[str] = None,
        interval_seconds: Optional[int] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        config = get_sync_config()
        self.monitor = monitor
        self.url = url or config.health_url
        self.interval = interval_seconds or config.auto_sync_interval_seconds
        self.timeout = timeout or config.operation_timeout_seconds
        self._client = client
        self.running = False
        self._task: Optional[asyncio.Task] = None

    async def check_once(self) -> bool:
        """Probe the health URL once and publish the result."""
        online = await self._probe()
        await self.monitor.set_online(online)
        return online

    async def _probe(self) -> bool:
        if not self.url:
            return self.monitor.is_online

        try:
            if self._client is not None:
                response = await self._client.get(self.url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(self.url, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.debug(f"Connectivity probe failed: {e}")
            return False

        return response.status_code < 500

    async def start(self):
        """Start polling."""
        if self.running:
            return

        self.running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Connectivity probe started with {self.interval}s interval")

    async def stop(self):
        """Stop polling."""
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Connectivity probe stopped")

    async def _run_loop(self):
        while self.running:
            try:
                await self.check_once()
            except Exception as e:
                logger.error(f"Error in connectivity probe loop: {e}")

            await asyncio.sleep(self.interval)
