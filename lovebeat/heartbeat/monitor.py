"""
Heartbeat Monitor

The task that owns the engine. Producers talk to it only through
bounded queues; a scheduler job enqueues a tick every second.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import structlog
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from lovebeat.heartbeat.engine import AlertSink, HeartbeatEngine
from lovebeat.heartbeat.models import (
    ALL_VIEW,
    ServiceRecord,
    UpsertServiceCommand,
    ViewRecord,
)
from lovebeat.heartbeat.store import Backend

logger = structlog.get_logger(__name__)

MAX_UNPROCESSED_PACKETS = 1000
COMMAND_QUEUE_SIZE = 5
EXPIRY_INTERVAL = 1.0
QUERY_TIMEOUT = 5.0


class MonitorError(Exception):
    """Base exception for monitor errors."""

    pass


class MonitorNotRunningError(MonitorError):
    """Raised when a command or query is sent to a stopped monitor."""

    pass


class MonitorTimeoutError(MonitorError):
    """Raised when a query is not answered in time."""

    pass


@dataclass
class _Tick:
    pass


@dataclass
class _Query:
    """A read request answered through ``reply``."""

    reply: asyncio.Future[Any] = field(
        init=False,
        default_factory=lambda: asyncio.get_running_loop().create_future(),
    )

    def answer(self, engine: HeartbeatEngine) -> Any:
        raise NotImplementedError


@dataclass
class _GetServices(_Query):
    view: str

    def answer(self, engine: HeartbeatEngine) -> list[ServiceRecord]:
        return engine.get_services(self.view)


@dataclass
class _GetService(_Query):
    name: str

    def answer(self, engine: HeartbeatEngine) -> ServiceRecord | None:
        return engine.get_service(self.name)


@dataclass
class _GetViews(_Query):
    def answer(self, engine: HeartbeatEngine) -> list[ViewRecord]:
        return engine.get_views()


@dataclass
class _GetView(_Query):
    name: str

    def answer(self, engine: HeartbeatEngine) -> ViewRecord | None:
        return engine.get_view(self.name)


class Monitor:
    """
    Serializes every read and write of the service and view state.

    One worker task waits on the tick, delete, upsert and query queues at
    once and handles exactly one input at a time, so the engine never sees
    interleaved mutations. Upserts and deletes are fire-and-forget; queries
    wait for a reply with a timeout.
    """

    def __init__(
        self,
        backend: Backend,
        alerter: AlertSink | None = None,
        clock: Callable[[], float] = time.time,
        tick_interval: float | None = EXPIRY_INTERVAL,
        query_timeout: float = QUERY_TIMEOUT,
    ) -> None:
        """
        Initialize the monitor.

        Args:
            backend: Persistence backend
            alerter: Receives alerting view transitions
            clock: Returns the current time in epoch seconds
            tick_interval: Seconds between ticks, None to only tick on demand
            query_timeout: Seconds a query waits for its reply
        """
        self._engine = HeartbeatEngine(backend, alerter)
        self._clock = clock
        self._tick_interval = tick_interval
        self._query_timeout = query_timeout

        self._ticks: asyncio.Queue[_Tick] = asyncio.Queue(maxsize=1)
        self._deletes: asyncio.Queue[str] = asyncio.Queue(maxsize=COMMAND_QUEUE_SIZE)
        self._upserts: asyncio.Queue[UpsertServiceCommand] = asyncio.Queue(
            maxsize=MAX_UNPROCESSED_PACKETS
        )
        self._queries: asyncio.Queue[_Query] = asyncio.Queue(maxsize=COMMAND_QUEUE_SIZE)

        self._worker: asyncio.Task[None] | None = None
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self) -> None:
        """Load state from the backend and start the worker and the ticker."""
        if self.is_running:
            logger.warning("Monitor already running")
            return

        self._engine.reload(self._clock())
        self._worker = asyncio.create_task(self._run(), name="lovebeat-monitor")

        if self._tick_interval:
            self._scheduler = self._create_scheduler()
            self._scheduler.add_job(
                self.tick,
                trigger=IntervalTrigger(seconds=self._tick_interval),
                id="tick",
                name="monitor:tick",
                replace_existing=True,
            )
            self._scheduler.start()

        logger.info("Monitor started", tick_interval=self._tick_interval)

    async def stop(self) -> None:
        """Stop the ticker and the worker. Queued commands are discarded."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        discarded = self._discard_pending()
        logger.info("Monitor stopped", discarded=discarded)

    def _discard_pending(self) -> int:
        """Empty every queue so that drain() returns. Pending queries fail."""
        discarded = 0
        for queue in (self._ticks, self._deletes, self._upserts, self._queries):
            while True:
                try:
                    item = queue.get_nowait()
                except asyncio.QueueEmpty:
                    break
                if isinstance(item, _Query) and not item.reply.done():
                    item.reply.set_exception(MonitorNotRunningError("Monitor stopped"))
                queue.task_done()
                discarded += 1
        return discarded

    def _create_scheduler(self) -> AsyncIOScheduler:
        """Create and configure the APScheduler instance."""
        return AsyncIOScheduler(
            jobstores={"default": MemoryJobStore()},
            executors={"default": AsyncIOExecutor()},
            job_defaults={
                "coalesce": True,  # Combine missed runs into one
                "max_instances": 1,
                "misfire_grace_time": 1,
            },
            timezone="UTC",
        )

    # Producers

    async def tick(self) -> None:
        """Request a re-evaluation. A tick already pending absorbs this one."""
        if not self.is_running:
            logger.debug("Monitor not running, ignoring tick")
            return
        try:
            self._ticks.put_nowait(_Tick())
        except asyncio.QueueFull:
            logger.debug("Tick already pending")

    async def upsert_service(self, command: UpsertServiceCommand) -> None:
        """
        Queue a beat and/or timeout update.

        Raises:
            MonitorNotRunningError: If the monitor is stopped
        """
        self._check_running()
        await self._upserts.put(command)

    async def beat(self, service: str) -> None:
        """Queue a plain beat for ``service``."""
        await self.upsert_service(UpsertServiceCommand(service=service))

    async def delete_service(self, name: str) -> None:
        """
        Queue the removal of a service.

        Raises:
            MonitorNotRunningError: If the monitor is stopped
        """
        self._check_running()
        await self._deletes.put(name)

    async def get_services(self, view: str = ALL_VIEW) -> list[ServiceRecord]:
        """Services matching ``view``, empty if the view does not exist."""
        return await self._ask(_GetServices(view=view))

    async def get_service(self, name: str) -> ServiceRecord | None:
        return await self._ask(_GetService(name=name))

    async def get_views(self) -> list[ViewRecord]:
        return await self._ask(_GetViews())

    async def get_view(self, name: str) -> ViewRecord | None:
        return await self._ask(_GetView(name=name))

    async def drain(self) -> None:
        """Wait until every queued command has been handled."""
        await asyncio.gather(
            self._ticks.join(),
            self._deletes.join(),
            self._upserts.join(),
            self._queries.join(),
        )

    def _check_running(self) -> None:
        if not self.is_running:
            raise MonitorNotRunningError("Monitor is not running")

    async def _ask(self, query: _Query) -> Any:
        self._check_running()
        try:
            async with asyncio.timeout(self._query_timeout):
                await self._queries.put(query)
                return await query.reply
        except TimeoutError:
            query.reply.cancel()
            raise MonitorTimeoutError(
                f"No reply to {type(query).__name__} within {self._query_timeout}s"
            ) from None

    # Worker

    async def _run(self) -> None:
        """Wait on all queues and handle one input at a time."""
        handlers: list[tuple[asyncio.Queue[Any], Callable[[Any], None]]] = [
            (self._ticks, self._handle_tick),
            (self._deletes, self._handle_delete),
            (self._upserts, self._handle_upsert),
            (self._queries, self._handle_query),
        ]
        getters = {queue: asyncio.create_task(queue.get()) for queue, _ in handlers}

        try:
            while True:
                done, _ = await asyncio.wait(
                    getters.values(), return_when=asyncio.FIRST_COMPLETED
                )
                for queue, handler in handlers:
                    getter = getters[queue]
                    if getter not in done:
                        continue
                    getters[queue] = asyncio.create_task(queue.get())
                    try:
                        handler(getter.result())
                    except Exception:
                        logger.exception("Monitor command failed", handler=handler.__name__)
                    finally:
                        queue.task_done()
        finally:
            for queue, getter in getters.items():
                if getter.done() and not getter.cancelled():
                    # Dequeued but never handled
                    item = getter.result()
                    if isinstance(item, _Query) and not item.reply.done():
                        item.reply.set_exception(MonitorNotRunningError("Monitor stopped"))
                    queue.task_done()
                else:
                    getter.cancel()

    def _handle_tick(self, _: _Tick) -> None:
        self._engine.tick(self._clock())

    def _handle_delete(self, name: str) -> None:
        self._engine.delete_service(name, self._clock())

    def _handle_upsert(self, command: UpsertServiceCommand) -> None:
        self._engine.upsert_service(command, self._clock())

    def _handle_query(self, query: _Query) -> None:
        if query.reply.done():
            # Caller gave up waiting
            return

        try:
            result = query.answer(self._engine)
        except Exception as e:
            query.reply.set_exception(e)
            raise
        query.reply.set_result(result)
