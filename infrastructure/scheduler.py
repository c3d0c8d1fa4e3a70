"""
进程内周期调度器（asyncio）

- 每个 PeriodicJob 拥有自己的循环，不同任务之间可以并发
- 同一任务不会重叠：上一次 tick 未结束时，新的触发直接跳过
- stop() 设置共享停机信号，批处理在两条记录之间检查，
  正在处理的记录会完成后再退出
"""
from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Optional, Protocol

import structlog

from application.dtos.reports import ProcessingReport
from core.logging_config import get_logger


logger = get_logger(__name__)


class TickRunner(Protocol):
    def __call__(
        self, now: datetime, *, stop_event: Optional[asyncio.Event] = None
    ) -> Awaitable[ProcessingReport]: ...


def system_clock() -> datetime:
    return datetime.now(timezone.utc)


class PeriodicJob:
    """一个按固定间隔触发的批处理任务"""

    def __init__(
        self,
        name: str,
        interval: float,
        run: TickRunner,
        clock: Callable[[], datetime] = system_clock,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.interval = interval
        self._run = run
        self._clock = clock
        self._running = asyncio.Lock()
        self.stop_event = asyncio.Event()

        self.runs = 0
        self.skipped = 0
        self.last_report: Optional[ProcessingReport] = None
        self.last_error: Optional[str] = None

    @property
    def is_busy(self) -> bool:
        return self._running.locked()

    async def run_once(self, now: Optional[datetime] = None) -> Optional[ProcessingReport]:
        """
        执行一次 tick

        Returns:
            本次 tick 的报告；上一次 tick 仍在运行时返回 None
        """
        if self._running.locked():
            self.skipped += 1
            logger.warning("tick_skipped_still_running", job=self.name, skipped=self.skipped)
            return None

        async with self._running:
            tick_now = now or self._clock()
            tick_id = uuid.uuid4().hex[:12]
            with structlog.contextvars.bound_contextvars(job=self.name, tick_id=tick_id):
                logger.debug("tick_started", now=tick_now.isoformat())
                try:
                    report = await self._run(tick_now, stop_event=self.stop_event)
                except Exception as exc:
                    # 服务本身会吞掉单条记录的错误，这里只兜住意外异常，保证循环不退出
                    self.last_error = str(exc)
                    logger.error("tick_crashed", error=str(exc), exc_info=True)
                    return None
                self.runs += 1
                self.last_report = report
                self.last_error = None
                return report

    async def loop(self) -> None:
        """按固定间隔触发，直到 stop_event 被设置"""
        loop = asyncio.get_running_loop()
        while not self.stop_event.is_set():
            started = loop.time()
            await self.run_once()
            remaining = max(0.0, self.interval - (loop.time() - started))
            try:
                await asyncio.wait_for(self.stop_event.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                continue

    def status(self) -> Dict[str, object]:
        return {
            "interval": self.interval,
            "busy": self.is_busy,
            "runs": self.runs,
            "skipped": self.skipped,
            "last_error": self.last_error,
            "last_report": self.last_report.summary() if self.last_report else None,
        }


class TickScheduler:
    """管理一组 PeriodicJob 的生命周期"""

    def __init__(self):
        self._jobs: Dict[str, PeriodicJob] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self.stop_event = asyncio.Event()

    @property
    def jobs(self) -> Dict[str, PeriodicJob]:
        return dict(self._jobs)

    @property
    def is_running(self) -> bool:
        return any(not t.done() for t in self._tasks.values())

    def add_job(self, job: PeriodicJob) -> PeriodicJob:
        if job.name in self._jobs:
            raise ValueError(f"job already registered: {job.name}")
        job.stop_event = self.stop_event
        self._jobs[job.name] = job
        return job

    def get_job(self, name: str) -> PeriodicJob:
        return self._jobs[name]

    async def start(self) -> None:
        if self.is_running:
            return
        self.stop_event.clear()
        for name, job in self._jobs.items():
            self._tasks[name] = asyncio.create_task(job.loop(), name=f"tick:{name}")
        logger.info("scheduler_started", jobs=sorted(self._jobs))

    async def stop(self, timeout: Optional[float] = 30.0) -> None:
        """设置停机信号并等待各任务退出；超时后取消"""
        self.stop_event.set()
        tasks = [t for t in self._tasks.values() if not t.done()]
        if tasks:
            done, pending = await asyncio.wait(tasks, timeout=timeout)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                logger.warning("scheduler_stop_timeout", cancelled=len(pending))
        self._tasks.clear()
        logger.info("scheduler_stopped")

    def status(self) -> Dict[str, object]:
        return {
            "running": self.is_running,
            "jobs": {name: job.status() for name, job in self._jobs.items()},
        }
