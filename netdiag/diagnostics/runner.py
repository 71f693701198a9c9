"""Diagnostic pipeline: fans probes out, collects results, derives status."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from ..errors import InternalError
from ..network import AddressFamily, GATEWAY_PORTS, ReachabilityResult, TcpError
from ..utils import get_logger, Config
from ..utils.config import split_gateway
from .endpoints import Endpoint
from .probes import Outcome, ProbeRequest, ProbeResult, ProbeRunner, probe_kinds
from .rules import RemediationHint, evaluate_rules, group_by_endpoint

logger = get_logger(__name__)


class OverallStatus(Enum):
    """Overall health of a run."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"

    @property
    def exit_code(self) -> int:
        return {
            OverallStatus.HEALTHY: 0,
            OverallStatus.DEGRADED: 1,
            OverallStatus.UNHEALTHY: 2,
        }[self]


@dataclass(frozen=True)
class PipelineOptions:
    """Run-level settings."""
    timeout: float = 5.0                 # per probe
    family: AddressFamily = AddressFamily.ANY
    concurrency: int = 8
    run_timeout: Optional[float] = 30.0  # None or 0 disables
    fail_fast: bool = False
    gateway: Optional[str] = None        # "ip" or "ip:port" reachability check

    @classmethod
    def from_config(cls, config: Config) -> "PipelineOptions":
        return cls(
            timeout=config.default_timeout,
            family=AddressFamily.parse(config.family),
            concurrency=config.concurrency,
            run_timeout=config.run_timeout or None,
            fail_fast=config.fail_fast,
            gateway=config.gateway,
        )


@dataclass(frozen=True)
class DiagnosticReport:
    """Complete diagnostic report for one run."""
    timestamp: datetime
    endpoints: Tuple[Endpoint, ...]
    results: Tuple[ProbeResult, ...]
    status: OverallStatus
    hints: Tuple[RemediationHint, ...] = ()
    duration_ms: float = 0.0
    options: PipelineOptions = field(default_factory=PipelineOptions)
    nameservers: Tuple[str, ...] = ()
    gateway: Optional[ReachabilityResult] = None

    @property
    def exit_code(self) -> int:
        return self.status.exit_code

    @property
    def summary(self) -> Dict[str, int]:
        counts = {outcome.value: 0 for outcome in Outcome}
        for result in self.results:
            counts[result.outcome.value] += 1
        return counts

    def failing_endpoints(self) -> List[str]:
        return [name for name, layers in group_by_endpoint(self.results).items()
                if not all(r.ok for r in layers.values())]


def overall_status(results: Sequence[ProbeResult]) -> OverallStatus:
    """
    Healthy when every endpoint passes all its probes, unhealthy when none
    does, degraded otherwise.
    """
    grouped = group_by_endpoint(results)
    passing = [all(r.ok for r in layers.values()) for layers in grouped.values()]
    if all(passing):
        return OverallStatus.HEALTHY
    if not any(passing):
        return OverallStatus.UNHEALTHY
    return OverallStatus.DEGRADED


class _ResultStore:
    """Lock-guarded result collection shared by the probe tasks.

    Once closed, late writes from tasks that outlived the run are dropped.
    """

    def __init__(self):
        self._results: Dict[Tuple[int, int], ProbeResult] = {}
        self._gateway: Optional[ReachabilityResult] = None
        self._lock = threading.Lock()
        self._closed = False

    def record(self, request: ProbeRequest, result: ProbeResult) -> bool:
        with self._lock:
            if self._closed:
                return False
            self._results[(request.index, request.sequence)] = result
            return True

    def record_gateway(self, result: ReachabilityResult) -> None:
        with self._lock:
            if not self._closed:
                self._gateway = result

    @property
    def gateway(self) -> Optional[ReachabilityResult]:
        with self._lock:
            return self._gateway

    def close(self) -> None:
        with self._lock:
            self._closed = True

    def get(self, request: ProbeRequest) -> Optional[ProbeResult]:
        with self._lock:
            return self._results.get((request.index, request.sequence))


class DiagnosticPipeline:
    """
    Runs the DNS, TCP and HTTP probes for every endpoint on a bounded
    thread pool and assembles the report.

    Every layer is probed regardless of how the lower layers did, unless
    fail_fast is set, in which case an endpoint's probes run in order and
    stop at the first failure (the rest are reported as skipped).
    """

    def __init__(self, runner: Optional[ProbeRunner] = None,
                 options: Optional[PipelineOptions] = None):
        self.runner = runner or ProbeRunner()
        self.options = options or PipelineOptions()
        self._cancel_flag = threading.Event()

    def cancel(self) -> None:
        """Cancel running diagnostics. Pending probes are reported as timeouts."""
        self._cancel_flag.set()
        self.runner.cancel()

    def reset_cancel(self) -> None:
        """Reset cancel flag."""
        self._cancel_flag.clear()
        self.runner.reset_cancel()

    def plan(self, endpoints: Sequence[Endpoint]) -> List[List[ProbeRequest]]:
        """Probe requests per endpoint, in registration order."""
        plan = []
        for index, endpoint in enumerate(endpoints):
            family = self.options.family.narrow(endpoint.family)
            plan.append([
                ProbeRequest(
                    endpoint=endpoint,
                    index=index,
                    kind=kind,
                    timeout=self.options.timeout,
                    family=family
                )
                for kind in probe_kinds(endpoint)
            ])
        return plan

    def run(self, endpoints: Sequence[Endpoint]) -> DiagnosticReport:
        """
        Run the diagnostic sequence.

        Args:
            endpoints: Targets in registration order

        Returns:
            DiagnosticReport with exactly one result per planned probe

        Raises:
            InternalError: if a probe task failed unexpectedly
        """
        self.reset_cancel()
        endpoints = tuple(endpoints)

        timestamp = datetime.now()
        start = time.monotonic()
        run_timeout = self.options.run_timeout
        deadline = start + run_timeout if run_timeout else None

        plan = self.plan(endpoints)
        if self.options.fail_fast:
            tasks = plan
        else:
            tasks = [[request] for chain in plan for request in chain]

        nameservers = tuple(self.runner.nameservers())
        logger.info(f"Resolvers: {', '.join(nameservers) or 'none configured'}")

        total = sum(len(chain) for chain in plan)
        logger.info(f"Running {total} probes against {len(endpoints)} endpoints "
                    f"(concurrency {self.options.concurrency})")

        store = _ResultStore()
        executor = ThreadPoolExecutor(max_workers=self.options.concurrency,
                                      thread_name_prefix="probe")
        try:
            futures = []
            if self.options.gateway:
                futures.append(executor.submit(self._run_gateway, store, deadline))
            futures.extend(executor.submit(self._run_chain, chain, store, deadline)
                           for chain in tasks)
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            done, not_done = wait(futures, timeout=remaining)

            for future in not_done:
                future.cancel()
            store.close()

            if not_done:
                logger.warning(f"Run timeout: {len(not_done)} probe tasks still outstanding")

            for future in done:
                error = future.exception()
                if error is not None:
                    raise InternalError(f"probe task failed: {error!r}") from error
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        duration_ms = (time.monotonic() - start) * 1000
        expired = (f"Run timeout expired after {run_timeout:.1f}s"
                   if run_timeout else "Run timeout expired")

        results = []
        for chain in plan:
            for request in chain:
                result = store.get(request)
                if result is None:
                    result = ProbeResult.timed_out(request, duration_ms, expired)
                results.append(result)

        gateway = store.gateway
        if self.options.gateway and gateway is None:
            address, port = split_gateway(self.options.gateway)
            gateway = ReachabilityResult(
                address=address, ports=[port] if port else list(GATEWAY_PORTS),
                family=self.options.family, reachable=False, response_time_ms=duration_ms,
                error=TcpError.TIMEOUT, detail=expired
            )

        status = overall_status(results)
        hints = evaluate_rules(results, gateway)

        logger.info(f"Diagnostics complete: {status.value} ({duration_ms:.0f}ms, "
                    f"{len(hints)} hints)")

        return DiagnosticReport(
            timestamp=timestamp,
            endpoints=endpoints,
            results=tuple(results),
            status=status,
            hints=tuple(hints),
            duration_ms=duration_ms,
            options=self.options,
            nameservers=nameservers,
            gateway=gateway,
        )

    def _run_gateway(self, store: _ResultStore, deadline: Optional[float]) -> None:
        if self._cancel_flag.is_set():
            return
        result = self.runner.check_gateway(self.options.gateway, self.options.family,
                                           self.options.timeout, deadline)
        store.record_gateway(result)

    def _run_chain(self, chain: Sequence[ProbeRequest], store: _ResultStore,
                   deadline: Optional[float]) -> None:
        failed: Optional[ProbeResult] = None
        for request in chain:
            if failed is not None:
                result = ProbeResult.skipped(
                    request, f"skipped after {failed.kind.value} probe failed"
                )
            elif self._cancel_flag.is_set():
                result = ProbeResult.timed_out(request, 0.0, "Cancelled")
            else:
                result = self.runner.run(request, deadline)

            store.record(request, result)

            if result.outcome in (Outcome.FAILURE, Outcome.TIMEOUT):
                logger.warning(f"{result.endpoint}/{result.kind.value}: "
                               f"{result.error.value if result.error else 'failed'} - "
                               f"{result.detail}")
                if self.options.fail_fast:
                    failed = result


def run_diagnostics(endpoints: Sequence[Endpoint],
                    options: Optional[PipelineOptions] = None,
                    runner: Optional[ProbeRunner] = None) -> DiagnosticReport:
    """Run the pipeline once with the given options."""
    return DiagnosticPipeline(runner=runner, options=options).run(endpoints)
