# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Telemetry infrastructure for cloudstructures.

Provides an explicitly constructed :class:`MetricsCollector` for local
counters and timing, optional OpenTelemetry tracing and metrics around batch
commits, and an extensible hook system for custom telemetry providers.
Nothing here is process-wide: every structure receives the manager and
collector it reports to.
"""

from __future__ import annotations

import datetime as _dt
import html
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import (
    Any,
    Dict,
    Generator,
    List,
    Optional,
    Protocol,
    Union,
    runtime_checkable,
)

from ..common.constants import (
    OTEL_ATTR_BATCH_INDEX,
    OTEL_ATTR_BATCH_SIZE,
    OTEL_ATTR_DB_OPERATION,
    OTEL_ATTR_DB_SYSTEM,
    OTEL_ATTR_PARTITION_KEY,
    OTEL_ATTR_TABLE_NAME,
)
from .log import StructureLogger

# Optional OpenTelemetry imports
try:
    from opentelemetry import trace, metrics
    from opentelemetry.trace import Status, StatusCode

    _OTEL_AVAILABLE = True
except ImportError:
    _OTEL_AVAILABLE = False
    trace = None  # type: ignore
    metrics = None  # type: ignore
    Status = None  # type: ignore
    StatusCode = None  # type: ignore


# Collector counter names
METRIC_BATCHES_COMMITTED = "batches_committed"
METRIC_BATCHES_FAILED = "batches_failed"
METRIC_OPERATIONS_COMMITTED = "operations_committed"
METRIC_OPERATIONS_QUEUED = "operations_queued"
METRIC_BATCHES_ROTATED = "batches_rotated"
METRIC_ENTITIES_RETRIEVED = "entities_retrieved"


# ============================================================================
# Configuration
# ============================================================================


@dataclass(frozen=True)
class TelemetryConfig:
    """Configuration for library telemetry and observability.

    Telemetry is opt-in. When enabled, batch commits produce
    OpenTelemetry-compatible traces, metrics and logs.

    Example:
        Tracing and metrics::

            config = StructuresConfig(
                telemetry=TelemetryConfig(enable_tracing=True, enable_metrics=True)
            )

        Custom hook::

            config = StructuresConfig(
                telemetry=TelemetryConfig(hooks=[MyBatchHook()])
            )
    """

    # Signal toggles
    enable_tracing: bool = False
    enable_metrics: bool = False
    enable_logging: bool = False

    # Service identification
    service_name: Optional[str] = None

    # Logging configuration
    log_level: str = "WARNING"
    logger_name: str = "cloudstructures"

    # Custom hooks
    hooks: List["TelemetryHook"] = field(default_factory=list)


# ============================================================================
# Metrics collector
# ============================================================================


class MetricsCollector:
    """
    Named counters plus an execution timer.

    Construct one per unit of work (a job, a request, a test) and pass it to
    the structures that should report into it.

    Example::

        collector = MetricsCollector()
        table = TableStructure("invoices", store, metrics=collector)
        ...
        collector.log_report(StdlibLogger("jobs"))
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = {}
        self._started_at = _dt.datetime.now()
        self._start = time.perf_counter()

    @property
    def started_at(self) -> _dt.datetime:
        return self._started_at

    @property
    def execution_time(self) -> float:
        """Seconds elapsed since the collector was created."""
        return time.perf_counter() - self._start

    def increment(self, name: str, amount: int = 1) -> int:
        with self._lock:
            value = self._counters.get(name, 0) + amount
            self._counters[name] = value
            return value

    def set(self, name: str, value: int) -> None:
        with self._lock:
            self._counters[name] = value

    def get(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def log_report(self, logger: StructureLogger) -> None:
        """Write execution time, start time and every counter to ``logger``."""
        logger.info(f"EXEC. TIME: {self.execution_time:.3f} seconds")
        logger.info(f"Started at: {self._started_at.isoformat(timespec='milliseconds')}")
        for name, value in sorted(self.snapshot().items()):
            logger.info(f"{name} {value}")

    def report_as_html(self) -> str:
        rows = [
            f"<tr><td>{html.escape(name)}:</td><td>{value}</td></tr>"
            for name, value in sorted(self.snapshot().items())
        ]
        rows.append(f"<tr><td>EXEC. TIME:</td><td>{self.execution_time:.3f} seconds</td></tr>")
        rows.append(
            f"<tr><td>Started at:</td><td>{self._started_at.isoformat(timespec='milliseconds')}</td></tr>"
        )
        return '<table border="1">' + "".join(rows) + "</table>"


# ============================================================================
# Context Objects
# ============================================================================


@dataclass
class BatchContext:
    """Context passed to telemetry hooks for each batch submission."""

    table_name: str
    partition_key: Optional[str]
    batch_index: int
    operation_count: int
    operation: str = "table.commit_batch"

    # Timing
    start_time: float = field(default_factory=time.perf_counter)

    # Custom data bag for hooks to share state
    custom_data: Dict[str, Any] = field(default_factory=dict)

    # Internal: span reference for adding outcome attributes
    _span: Any = field(default=None, repr=False)


@dataclass
class BatchOutcome:
    """Outcome information passed to telemetry hooks."""

    succeeded: bool
    duration_ms: float
    operation_count: int
    error: Optional[Exception] = None


# ============================================================================
# Hook Protocol
# ============================================================================


@runtime_checkable
class TelemetryHook(Protocol):
    """Protocol for custom telemetry hooks.

    All methods are optional - implement only what you need.

    Example:
        class StatsdHook:
            def __init__(self, statsd):
                self.statsd = statsd

            def on_batch_end(self, batch: BatchContext, outcome: BatchOutcome):
                self.statsd.timing(f"tables.{batch.table_name}.commit", outcome.duration_ms)
    """

    def on_batch_start(self, context: BatchContext) -> None:
        """Called before a batch is handed to the store."""
        ...

    def on_batch_end(self, batch: BatchContext, outcome: BatchOutcome) -> None:
        """Called after the store accepted or rejected a batch."""
        ...

    def on_batch_error(self, batch: BatchContext, error: Exception) -> None:
        """Called when a batch submission raised."""
        ...


# ============================================================================
# Telemetry Manager
# ============================================================================


class _CollectorMixin:
    _collector: Optional[MetricsCollector]

    @property
    def collector(self) -> Optional[MetricsCollector]:
        return self._collector

    def count(self, table_name: str, name: str, amount: int = 1) -> None:
        if self._collector is not None:
            self._collector.increment(f"{table_name}.{name}", amount)

    def _collect_outcome(self, ctx: BatchContext, error: Optional[Exception]) -> None:
        if error is None:
            self.count(ctx.table_name, METRIC_BATCHES_COMMITTED)
            self.count(ctx.table_name, METRIC_OPERATIONS_COMMITTED, ctx.operation_count)
        else:
            self.count(ctx.table_name, METRIC_BATCHES_FAILED)


class TelemetryManager(_CollectorMixin):
    """Manages telemetry instrumentation for batch commits.

    This class is internal and not part of the public API.
    """

    def __init__(
        self,
        config: Optional[TelemetryConfig] = None,
        collector: Optional[MetricsCollector] = None,
    ) -> None:
        self._config = config or TelemetryConfig()
        self._collector = collector
        self._tracer: Optional[Any] = None
        self._meter: Optional[Any] = None
        self._logger: Optional[logging.Logger] = None
        self._hooks = list(self._config.hooks)

        # Metric instruments
        self._batch_duration: Optional[Any] = None
        self._batch_count: Optional[Any] = None
        self._error_count: Optional[Any] = None
        self._operation_count: Optional[Any] = None

        self._initialize()

    @property
    def is_tracing_enabled(self) -> bool:
        return self._config.enable_tracing and _OTEL_AVAILABLE

    @property
    def is_metrics_enabled(self) -> bool:
        return self._config.enable_metrics and _OTEL_AVAILABLE

    def _initialize(self) -> None:
        if self._config.enable_tracing and _OTEL_AVAILABLE:
            self._tracer = trace.get_tracer("cloudstructures")

        if self._config.enable_metrics and _OTEL_AVAILABLE:
            self._meter = metrics.get_meter("cloudstructures")
            self._setup_metrics()

        if self._config.enable_logging:
            self._logger = logging.getLogger(self._config.logger_name)
            self._logger.setLevel(getattr(logging, self._config.log_level.upper()))

    def _setup_metrics(self) -> None:
        if not self._meter:
            return

        self._batch_duration = self._meter.create_histogram(
            name="cloudstructures.batch.duration",
            description="Duration of batch commits",
            unit="ms",
        )
        self._batch_count = self._meter.create_counter(
            name="cloudstructures.batch.count",
            description="Number of batches submitted",
            unit="1",
        )
        self._error_count = self._meter.create_counter(
            name="cloudstructures.batch.error.count",
            description="Number of failed batch commits",
            unit="1",
        )
        self._operation_count = self._meter.create_counter(
            name="cloudstructures.operation.count",
            description="Number of operations committed",
            unit="1",
        )

    @contextmanager
    def trace_batch(
        self,
        table_name: str,
        partition_key: Optional[str],
        batch_index: int,
        operation_count: int,
    ) -> Generator[BatchContext, None, None]:
        """Create a traced batch context.

        Usage:
            with telemetry.trace_batch("invoices", "2020", 0, 100) as ctx:
                await store.commit_batch(...)
        """
        ctx = BatchContext(
            table_name=table_name,
            partition_key=partition_key,
            batch_index=batch_index,
            operation_count=operation_count,
        )

        self._dispatch_batch_start(ctx)

        span = None
        if self._tracer:
            span = self._tracer.start_span(
                f"Table commit_batch {table_name}",
                kind=trace.SpanKind.CLIENT,
                attributes={
                    OTEL_ATTR_DB_SYSTEM: "azure_tables",
                    OTEL_ATTR_DB_OPERATION: ctx.operation,
                    OTEL_ATTR_TABLE_NAME: table_name,
                    OTEL_ATTR_BATCH_INDEX: batch_index,
                    OTEL_ATTR_BATCH_SIZE: operation_count,
                    **({OTEL_ATTR_PARTITION_KEY: partition_key} if partition_key else {}),
                },
            )
            ctx._span = span

        try:
            yield ctx
        except BaseException as e:
            if span:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                span.record_exception(e)
            if isinstance(e, Exception):
                self._record(ctx, e)
                self._dispatch_batch_error(ctx, e)
            raise
        else:
            self._record(ctx, None)
        finally:
            if span:
                span.end()

    def _record(self, ctx: BatchContext, error: Optional[Exception]) -> None:
        duration_ms = (time.perf_counter() - ctx.start_time) * 1000
        outcome = BatchOutcome(
            succeeded=error is None,
            duration_ms=duration_ms,
            operation_count=ctx.operation_count,
            error=error,
        )

        self._collect_outcome(ctx, error)

        if self._batch_duration:
            attributes = {"table": ctx.table_name, "succeeded": outcome.succeeded}
            self._batch_duration.record(duration_ms, attributes)
            self._batch_count.add(1, attributes)
            if error is None:
                self._operation_count.add(ctx.operation_count, attributes)
            else:
                self._error_count.add(1, attributes)

        if self._logger:
            level = logging.WARNING if error is not None else logging.DEBUG
            self._logger.log(
                level,
                f"{ctx.operation} {ctx.table_name} batch={ctx.batch_index} "
                f"ops={ctx.operation_count} ok={outcome.succeeded} {duration_ms:.1f}ms",
            )

        self._dispatch_batch_end(ctx, outcome)

    def _dispatch_batch_start(self, ctx: BatchContext) -> None:
        for hook in self._hooks:
            if hasattr(hook, "on_batch_start"):
                try:
                    hook.on_batch_start(ctx)
                except Exception:
                    pass  # Hooks should not break commits

    def _dispatch_batch_end(self, ctx: BatchContext, outcome: BatchOutcome) -> None:
        for hook in self._hooks:
            if hasattr(hook, "on_batch_end"):
                try:
                    hook.on_batch_end(ctx, outcome)
                except Exception:
                    pass

    def _dispatch_batch_error(self, ctx: BatchContext, error: Exception) -> None:
        for hook in self._hooks:
            if hasattr(hook, "on_batch_error"):
                try:
                    hook.on_batch_error(ctx, error)
                except Exception:
                    pass


# ============================================================================
# No-op Manager for when telemetry is disabled
# ============================================================================


class NoOpTelemetryManager(_CollectorMixin):
    """Telemetry manager when tracing, metrics, logging and hooks are all off.

    Still feeds the collector, when one is given.
    """

    def __init__(self, collector: Optional[MetricsCollector] = None) -> None:
        self._collector = collector

    @contextmanager
    def trace_batch(
        self,
        table_name: str,
        partition_key: Optional[str],
        batch_index: int,
        operation_count: int,
    ) -> Generator[BatchContext, None, None]:
        ctx = BatchContext(
            table_name=table_name,
            partition_key=partition_key,
            batch_index=batch_index,
            operation_count=operation_count,
        )
        try:
            yield ctx
        except Exception as e:
            self._collect_outcome(ctx, e)
            raise
        else:
            self._collect_outcome(ctx, None)


def create_telemetry_manager(
    config: Optional[TelemetryConfig],
    collector: Optional[MetricsCollector] = None,
) -> Union[TelemetryManager, NoOpTelemetryManager]:
    """Factory to create appropriate telemetry manager."""
    if config is None:
        return NoOpTelemetryManager(collector)

    has_any_enabled = (
        config.enable_tracing
        or config.enable_metrics
        or config.enable_logging
        or config.hooks
    )

    if not has_any_enabled:
        return NoOpTelemetryManager(collector)

    return TelemetryManager(config, collector)


__all__ = [
    "TelemetryConfig",
    "TelemetryHook",
    "TelemetryManager",
    "NoOpTelemetryManager",
    "MetricsCollector",
    "BatchContext",
    "BatchOutcome",
    "create_telemetry_manager",
]
