"""
Scheduled maintenance: health check monitoring and log purging.

Run as its own process with ``python -m shared_logging.scheduler``. The parent
process stops it by writing ``shutdown`` on the child's stdin; SIGTERM and
SIGINT are treated the same way.
"""

import os
import signal
import sys
import threading
from dataclasses import dataclass, field
from enum import Enum
from datetime import timedelta
from typing import Callable, Dict, Optional, TextIO, Union

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .config import ContextLogger, get_logger, setup_logging
from .interface import LoggerInterface, create_logger
from .settings import LoggingSettings

SHUTDOWN_MESSAGE = "shutdown"
SCHEDULER_COMPONENT_NAME = "logging-module-scheduler"

MONITOR_TASK = "Health Check"
PURGE_TASK = "Log Cleanup"


class TaskState(str, Enum):
    SCHEDULED = "scheduled"
    RUNNING = "running"
    DESTROYED = "destroyed"


@dataclass
class ScheduledTask:
    name: str
    schedule: Union[str, timedelta]
    handler: Callable[[], object]
    state: TaskState = TaskState.SCHEDULED
    job_id: Optional[str] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def begin(self) -> bool:
        """Move to RUNNING for one tick; False once destroyed"""
        with self._lock:
            if self.state is TaskState.DESTROYED:
                return False
            self.state = TaskState.RUNNING
            return True

    def end(self) -> None:
        with self._lock:
            if self.state is TaskState.RUNNING:
                self.state = TaskState.SCHEDULED

    def mark_destroyed(self) -> None:
        with self._lock:
            self.state = TaskState.DESTROYED


def get_cron_time(hours: int, minutes: Optional[int] = None, day: Optional[int] = None) -> str:
    """Crontab expression for a daily (or monthly, with ``day``) run"""
    if day:
        return f"{minutes or 0} {hours} {day} * *"
    if minutes is None:
        return f"* {hours} * * *"
    return f"{minutes} {hours} * * *"


class ScheduledTaskCoordinator:
    """
    Owns the Monitor and Purge jobs and tears them down on shutdown.

    A failing handler is logged and left scheduled; the next tick still fires.
    Destroyed tasks never run again.
    """

    def __init__(self, logger: LoggerInterface, settings: LoggingSettings,
                 scheduler: Optional[BackgroundScheduler] = None,
                 exit_fn: Callable[[int], None] = sys.exit):
        self.logger = logger
        self.settings = settings
        self.scheduler = scheduler or BackgroundScheduler(timezone=settings.timezone)
        self.exit_fn = exit_fn
        self.tasks: Dict[str, ScheduledTask] = {}
        self._shutdown_lock = threading.Lock()
        self._shutting_down = False

    def build_trigger(self, schedule: Union[str, timedelta]) -> BaseTrigger:
        """Fixed period for a timedelta, wall clock crontab for a string"""
        if isinstance(schedule, timedelta):
            return IntervalTrigger(seconds=int(schedule.total_seconds()), timezone=self.settings.timezone)
        return CronTrigger.from_crontab(schedule, timezone=self.settings.timezone)

    def register(self, name: str, schedule: Union[str, timedelta],
                 handler: Callable[[], object]) -> ScheduledTask:
        task = ScheduledTask(name=name, schedule=schedule, handler=handler)
        job = self.scheduler.add_job(
            self.run_task,
            trigger=self.build_trigger(schedule),
            args=[task],
            id=name,
            name=name,
            replace_existing=True,
        )
        task.job_id = job.id
        self.tasks[name] = task
        return task

    def start(self) -> None:
        """Register both maintenance tasks and start the scheduler"""
        method_name = 'startProcess'

        try:
            self.register(
                MONITOR_TASK,
                timedelta(minutes=self.settings.monitor_interval_minutes),
                self.logger.monitor,
            )
            self.register(
                PURGE_TASK,
                get_cron_time(self.settings.purge_hour, self.settings.purge_minute),
                self.logger.purge,
            )
            self.scheduler.start()

            scheduled = ', '.join(f"{task.name} ({task.schedule})" for task in self.tasks.values())
            self.logger.debug({
                'context': method_name,
                'message': f"Scheduled {scheduled}"
            })
        except Exception as err:
            self.logger.error({
                'context': method_name,
                'message': str(err) or type(err).__name__
            })
            self.destroy_tasks()

    def run_task(self, task: ScheduledTask) -> None:
        """One tick: started, handler, completed"""
        if not task.begin():
            return

        try:
            self.logger.debug({'context': task.name, 'message': 'started'})
            task.handler()
            self.logger.debug({'context': task.name, 'message': 'completed'})
        except Exception as err:
            self.logger.error({
                'context': task.name,
                'message': str(err) or type(err).__name__
            })
        finally:
            task.end()

    def destroy_tasks(self) -> None:
        self.logger.debug({
            'context': 'destroyTasks',
            'message': 'terminating pending tasks'
        })

        for task in self.tasks.values():
            task.mark_destroyed()
            if task.job_id:
                try:
                    self.scheduler.remove_job(task.job_id)
                except JobLookupError:
                    pass

        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def handle_message(self, message: str) -> bool:
        """
        Handle one control message, returning True once shutdown has begun

        Every task is destroyed before the exit function is called.
        """
        message = (message or "").strip()
        self.logger.debug({
            'context': 'startProcess',
            'message': f"Received '{message}' message"
        })

        if message != SHUTDOWN_MESSAGE:
            return False

        with self._shutdown_lock:
            if self._shutting_down:
                return True
            self._shutting_down = True

        self.destroy_tasks()
        self.exit_fn(0)
        return True

    def listen(self, stream: TextIO = sys.stdin) -> None:
        """Read control messages line by line; a closed pipe means the parent is gone"""
        for line in stream:
            if self.handle_message(line):
                return
        self.handle_message(SHUTDOWN_MESSAGE)


def create_coordinator(scheduler: Optional[BackgroundScheduler] = None,
                       exit_fn: Callable[[int], None] = sys.exit) -> ScheduledTaskCoordinator:
    """
    Coordinator for the scheduler process.

    Settings are loaded by the logger factory, so a bad configuration yields
    a no-op logger and default schedules instead of an exception.
    """
    logger = create_logger(component_name=SCHEDULER_COMPONENT_NAME)
    settings = logger.engine.settings if logger.initialized else LoggingSettings()
    return ScheduledTaskCoordinator(logger, settings, scheduler=scheduler, exit_fn=exit_fn)


def main() -> None:
    setup_logging(log_dir=os.environ.get("LOG_DIR"))
    diagnostics = ContextLogger(get_logger(), {"component": SCHEDULER_COMPONENT_NAME})

    coordinator = create_coordinator()
    coordinator.start()
    diagnostics.info("Scheduler started", context={"pid": os.getpid()})

    def on_signal(signum, frame):
        diagnostics.info(f"Received signal {signum}", context={"pid": os.getpid()})
        coordinator.handle_message(SHUTDOWN_MESSAGE)

    signal.signal(signal.SIGTERM, on_signal)
    signal.signal(signal.SIGINT, on_signal)

    coordinator.listen()


if __name__ == "__main__":
    main()
