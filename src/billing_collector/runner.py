import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol

import structlog

from billing_collector.errors import ConfigurationError
from billing_collector.metrics import MetricsUpdater

logger = structlog.get_logger()

_DEFAULT_INTERVAL_SECONDS = 24 * 60 * 60


class Job(Protocol):
    name: "str"

    async def run_once(self, reference: "datetime") -> "int": ...


def _utcnow() -> "datetime":
    return datetime.now(timezone.utc)


class Runner:
    """
    Runner drives a billing job. On start it either runs the job once
    for now, or catches up from `days` days ago to now, one run per
    billing window (`catch_up_step`). Afterwards it runs the job on a
    fixed period until stop() is called.

    Ticks are scheduled against fixed deadlines so run durations do
    not shift later runs. Ticks missed while a run was still going
    are dropped, runs never overlap. A failing run is logged and
    counted, the loop keeps going. Configuration errors are the
    exception: they stop the runner by propagating out of run().
    """

    def __init__(
        self,
        job: "Job",
        metrics_updater: "MetricsUpdater",
        interval_seconds: "float" = _DEFAULT_INTERVAL_SECONDS,
        days: "int" = 0,
        clock: "Callable[[], datetime]" = _utcnow,
        catch_up_step: "timedelta" = timedelta(days=1),
    ) -> "None":
        self._job = job
        self._metrics = metrics_updater
        self._interval = interval_seconds
        self._days = days
        self._clock = clock
        self._catch_up_step = catch_up_step
        self._stop_event: "asyncio.Event" = asyncio.Event()

    def stop(self) -> "None":
        """
        signals the runner to stop before the next run.
        """
        self._stop_event.set()

    async def run(self) -> "None":
        """
        runs the catch-up sequence and then the periodic loop until
        stop() is called.
        """
        logger.info("runner_started", job=self._job.name, days=self._days)

        # walks from the oldest window towards now
        now = self._clock()
        reference = now - timedelta(days=self._days)
        while reference <= now:
            if self._stop_event.is_set():
                logger.info("runner_stopped_during_catch_up", job=self._job.name)
                return
            await self.run_once(reference)
            reference += self._catch_up_step

        loop = asyncio.get_running_loop()
        next_at = loop.time() + self._interval
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=max(0.0, next_at - loop.time())
                )
            except TimeoutError:
                await self.run_once(self._clock())
                next_at += self._interval
                missed = 0
                while self._interval > 0 and next_at <= loop.time():
                    next_at += self._interval
                    missed += 1
                if missed:
                    logger.warning("billing_ticks_missed", job=self._job.name, missed=missed)

        logger.info("runner_stopped", job=self._job.name)

    async def run_once(self, reference: "datetime") -> "bool":
        """
        executes a single run for the reference instant. Returns
        whether it succeeded. Only configuration errors propagate.
        """
        job = self._job.name
        start = time.monotonic()
        logger.info("billing_run_start", job=job, reference=reference.isoformat())

        try:
            sent = await self._run_until_stopped(reference)
        except asyncio.CancelledError:
            if not self._stop_event.is_set():
                raise
            logger.info("billing_run_aborted", job=job, reference=reference.isoformat())
            self._metrics.inc_run(job, "aborted")
            return False
        except ConfigurationError:
            # misconfiguration will not heal on the next tick
            self._metrics.inc_run(job, "failed")
            raise
        except Exception:
            logger.exception("billing_run_failed", job=job, reference=reference.isoformat())
            self._metrics.inc_run(job, "failed")
            return False
        finally:
            self._metrics.observe_run_duration(job, time.monotonic() - start)

        self._metrics.inc_run(job, "succeeded")
        self._metrics.inc_records_sent(job, sent)
        self._metrics.set_last_run_success(job, time.time())
        logger.info("billing_run_end", job=job, records=sent)
        return True

    async def _run_until_stopped(self, reference: "datetime") -> "int":
        """
        runs the job, cancelling it if stop() is called in the meantime.
        """
        run = asyncio.ensure_future(self._job.run_once(reference))
        stopped = asyncio.ensure_future(self._stop_event.wait())
        try:
            await asyncio.wait({run, stopped}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            run.cancel()
            raise
        finally:
            stopped.cancel()

        if not run.done():
            run.cancel()
        return await run
