"""Executes probes against the shared node.

Two scheduling tiers:

1. :meth:`FingerprintRunner.run_initial` runs every enabled probe once,
   concurrently, each under its own timeout and the whole pass under the
   startup deadline so registration is never blocked by a hung endpoint.
2. :meth:`FingerprintRunner.start_periodic` starts one task per periodic
   probe. :meth:`FingerprintRunner.stop` is the single join point: it lets
   in-flight attempts finish, cancels stragglers and closes the merger so the
   node is not mutated after it returns.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from ..config import AgentConfig
from ..core.merger import NodeMerger
from .base import BaseFingerprint, FingerprintOutcome, FingerprintResult
from .registry import FingerprintRegistry

LOGGER = logging.getLogger(__name__)


class FingerprintPassError(Exception):
    """Raised when no probe succeeded although base probes were expected."""


@dataclass(slots=True)
class FingerprintReport:
    results: List[FingerprintResult] = field(default_factory=list)
    mandatory_expected: bool = False

    @property
    def applicable(self) -> List[str]:
        return [
            r.name for r in self.results if r.outcome is FingerprintOutcome.APPLICABLE
        ]

    @property
    def not_applicable(self) -> List[str]:
        return [
            r.name
            for r in self.results
            if r.outcome is FingerprintOutcome.NOT_APPLICABLE
        ]

    @property
    def failed(self) -> List[str]:
        return [r.name for r in self.results if r.failed]

    @property
    def ok(self) -> bool:
        """False only when mandatory probes were enabled and nothing applied."""
        return not (self.mandatory_expected and not self.applicable)

    def result_for(self, name: str) -> Optional[FingerprintResult]:
        for result in self.results:
            if result.name == name:
                return result
        return None


class FingerprintRunner:
    """Runs a registry of probes and commits their output through a merger."""

    def __init__(
        self,
        registry: FingerprintRegistry,
        merger: NodeMerger,
        config: AgentConfig,
        *,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._registry = registry
        self._merger = merger
        self._config = config
        self._clock = clock or time.monotonic
        self._probe_timeout = config.fingerprint.probe_timeout_seconds
        self._startup_deadline = config.fingerprint.startup_deadline_seconds

        self._periodic_tasks: Dict[str, asyncio.Task[None]] = {}
        self._stop_event = asyncio.Event()
        self._stopped = False
        self._last_results: Dict[str, FingerprintResult] = {}

    @property
    def last_results(self) -> Dict[str, FingerprintResult]:
        return dict(self._last_results)

    @property
    def periodic_names(self) -> List[str]:
        return list(self._periodic_tasks)

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._periodic_tasks.values())

    async def run_probe(self, probe: BaseFingerprint) -> FingerprintResult:
        """Run one probe under the per-probe timeout and commit its response."""
        started = self._clock()
        try:
            async with asyncio.timeout(self._probe_timeout):
                response = await probe.fingerprint(self._config)
        except asyncio.TimeoutError:
            LOGGER.warning(
                "Probe '%s' timed out after %.1fs", probe.name, self._probe_timeout
            )
            return self._record(
                FingerprintResult(
                    probe.name,
                    FingerprintOutcome.ERROR,
                    error=f"timed out after {self._probe_timeout:.1f}s",
                    duration=self._clock() - started,
                )
            )
        except Exception as exc:
            LOGGER.warning("Probe '%s' failed: %s", probe.name, exc, exc_info=True)
            return self._record(
                FingerprintResult(
                    probe.name,
                    FingerprintOutcome.ERROR,
                    error=str(exc) or type(exc).__name__,
                    duration=self._clock() - started,
                )
            )

        committed = False
        if not response.is_empty():
            committed = await self._merger.commit(probe.name, response)

        if response.errors:
            outcome = FingerprintOutcome.ERROR
            error: Optional[str] = "; ".join(response.errors)
            LOGGER.warning("Probe '%s' returned partial data: %s", probe.name, error)
        elif response.detected:
            outcome = FingerprintOutcome.APPLICABLE
            error = None
        else:
            outcome = FingerprintOutcome.NOT_APPLICABLE
            error = None

        return self._record(
            FingerprintResult(
                probe.name,
                outcome,
                error=error,
                duration=self._clock() - started,
                committed=committed,
            )
        )

    async def run_initial(self) -> FingerprintReport:
        """Run every probe once, concurrently, within the startup deadline."""
        probes = list(self._registry)
        report = FingerprintReport(
            mandatory_expected=any(probe.mandatory for probe in probes)
        )
        if not probes:
            LOGGER.warning("No probes enabled; node will carry no attributes")
            return report

        tasks = {
            asyncio.create_task(
                self.run_probe(probe), name=f"fingerprint:{probe.name}"
            ): probe
            for probe in probes
        }

        _, pending = await asyncio.wait(tasks, timeout=self._startup_deadline)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        for task, probe in tasks.items():
            if task in pending:
                LOGGER.warning(
                    "Probe '%s' did not finish within the %.1fs startup deadline",
                    probe.name,
                    self._startup_deadline,
                )
                result = self._record(
                    FingerprintResult(
                        probe.name,
                        FingerprintOutcome.ERROR,
                        error="startup deadline exceeded",
                        duration=self._startup_deadline,
                    )
                )
            else:
                result = task.result()
            report.results.append(result)

        LOGGER.info(
            "Fingerprint pass complete: %d applicable, %d not applicable, %d failed",
            len(report.applicable),
            len(report.not_applicable),
            len(report.failed),
        )
        for result in report.results:
            if result.failed:
                LOGGER.warning("Probe '%s' failed: %s", result.name, result.error)

        return report

    def start_periodic(self) -> None:
        """Schedule every periodic probe on its own interval."""
        if self._stopped:
            raise RuntimeError("FingerprintRunner already stopped")

        for probe in self._registry:
            if not probe.periodic or probe.name in self._periodic_tasks:
                continue
            self._periodic_tasks[probe.name] = asyncio.create_task(
                self._periodic_loop(probe), name=f"fingerprint-periodic:{probe.name}"
            )
            LOGGER.info(
                "Periodic probe '%s' scheduled every %.1fs",
                probe.name,
                probe.periodic_interval,
            )

    async def stop(self, *, grace: Optional[float] = None) -> None:
        """Stop periodic probes and close the merger.

        In-flight probe attempts get ``grace`` seconds (default: the probe
        timeout) to finish and commit; anything still running is cancelled.
        """
        if self._stopped:
            return
        self._stopped = True
        self._stop_event.set()

        tasks = list(self._periodic_tasks.values())
        if tasks:
            wait_for = self._probe_timeout if grace is None else grace
            _, pending = await asyncio.wait(tasks, timeout=wait_for)
            for task in pending:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        self._periodic_tasks.clear()
        self._merger.close()
        LOGGER.info("Fingerprint runner stopped")

    async def _periodic_loop(self, probe: BaseFingerprint) -> None:
        try:
            while not self._stop_event.is_set():
                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(), timeout=probe.periodic_interval
                    )
                    break
                except asyncio.TimeoutError:
                    pass

                await self.run_probe(probe)
        except asyncio.CancelledError:
            LOGGER.debug("Periodic probe '%s' cancelled", probe.name)
            raise
        except Exception as exc:
            LOGGER.error(
                "Unexpected error in periodic probe '%s': %s",
                probe.name,
                exc,
                exc_info=True,
            )

    def _record(self, result: FingerprintResult) -> FingerprintResult:
        self._last_results[result.name] = result
        return result
