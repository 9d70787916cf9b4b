"""CloudWatch custom metrics emitter with background batching.

Publishes per-call metrics (count, latency, errors) for every external
dependency the orchestrator waits on: the model backends, the calendar,
and the outbound messaging providers.  Orchestration outcomes (reply,
fallback, failure) are counted as well.

* Metrics are collected in a thread-safe in-memory buffer.
* A daemon thread flushes the buffer to CloudWatch every
  ``FLUSH_INTERVAL_SECONDS``.
* When ``METRICS_ENABLED != "true"`` metrics are only logged at DEBUG.

>>> from appointment_agent.services.metrics import metrics
>>> async with metrics.track("google_calendar", "freebusy"):
...     ...
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "AppointmentAgent"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # CloudWatch API limit per PutMetricData call


class MetricsClient:
    """Batched CloudWatch metrics publisher."""

    def __init__(self) -> None:
        self._enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

        if self._enabled:
            self._start_flush_thread()

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── Public API ────────────────────────────────────────────────────

    def record_success(self, service: str, operation: str, latency_ms: float) -> None:
        """Record a successful external call."""
        now = datetime.now(UTC)
        self._append(
            self._datum(
                "ExternalAPI/RequestCount", now, 1, "Count",
                Service=service, Status="success",
            )
        )
        self._append(
            self._datum(
                "ExternalAPI/Latency", now, latency_ms, "Milliseconds",
                Service=service, Operation=operation,
            )
        )
        logger.debug("Metric: %s %s success latency=%.1fms", service, operation, latency_ms)

    def record_failure(
        self,
        service: str,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
    ) -> None:
        """Record a failed external call."""
        now = datetime.now(UTC)
        self._append(
            self._datum(
                "ExternalAPI/RequestCount", now, 1, "Count",
                Service=service, Status="failure",
            )
        )
        self._append(
            self._datum(
                "ExternalAPI/ErrorCount", now, 1, "Count",
                Service=service, ErrorType=error_type,
            )
        )
        if latency_ms > 0:
            self._append(
                self._datum(
                    "ExternalAPI/Latency", now, latency_ms, "Milliseconds",
                    Service=service, Operation=operation,
                )
            )
        logger.debug(
            "Metric: %s %s failure error=%s latency=%.1fms",
            service, operation, error_type, latency_ms,
        )

    def record_outcome(self, outcome: str) -> None:
        """Count one orchestration outcome (``replied``, ``fallback``, ``failed``...)."""
        self._append(
            self._datum("Orchestration/Outcome", datetime.now(UTC), 1, "Count", Outcome=outcome)
        )
        logger.debug("Metric: orchestration outcome=%s", outcome)

    @asynccontextmanager
    async def track(self, service: str, operation: str) -> AsyncIterator[None]:
        """Time the wrapped block and record success or failure (re-raising)."""
        t0 = time.perf_counter()
        try:
            yield
        except BaseException as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            self.record_failure(
                service, operation, error_type=type(exc).__name__, latency_ms=elapsed,
            )
            raise
        elapsed = (time.perf_counter() - t0) * 1000
        self.record_success(service, operation, latency_ms=elapsed)

    def flush(self) -> int:
        """Publish everything buffered so far.  Returns the number of data points sent."""
        batch = self._drain()
        if not batch:
            return 0
        if not self._enabled:
            logger.debug("Metrics flush skipped (not enabled): %d items", len(batch))
            return 0
        return self._publish(batch)

    def close(self) -> None:
        """Stop the background flusher and publish what is left."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=FLUSH_INTERVAL_SECONDS)
            self._thread = None
        self.flush()

    # ── Internal ──────────────────────────────────────────────────────

    @staticmethod
    def _datum(
        name: str, timestamp: datetime, value: float, unit: str, **dimensions: str,
    ) -> dict[str, Any]:
        return {
            "MetricName": name,
            "Dimensions": [{"Name": k, "Value": v} for k, v in dimensions.items()],
            "Timestamp": timestamp,
            "Value": value,
            "Unit": unit,
        }

    def _append(self, metric_data: dict[str, Any]) -> None:
        with self._lock:
            self._buffer.append(metric_data)

    def _drain(self) -> list[dict[str, Any]]:
        with self._lock:
            batch, self._buffer = self._buffer, []
        return batch

    def _publish(self, batch: list[dict[str, Any]]) -> int:
        # PutMetricData accepts at most MAX_BATCH_SIZE points per call.
        chunks = [batch[i : i + MAX_BATCH_SIZE] for i in range(0, len(batch), MAX_BATCH_SIZE)]
        sent = 0
        try:
            cw = self._get_cw_client()
            for chunk in chunks:
                cw.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
        except Exception:
            logger.exception("Failed to publish metrics; dropped %d data points", len(batch) - sent)
        else:
            logger.info("Flushed %d metrics to CloudWatch", sent)
        return sent

    def _start_flush_thread(self) -> None:
        def _loop():
            while not self._stop.wait(FLUSH_INTERVAL_SECONDS):
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        self._thread = threading.Thread(target=_loop, daemon=True, name="metrics-flush")
        self._thread.start()
        atexit.register(self.close)
        logger.info("Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS)


# ── Module-level singleton ──────────────────────────────────────────
metrics = MetricsClient()
