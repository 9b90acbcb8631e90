"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


REQUEST_COUNTER = Counter(
	"nomadnow_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"nomadnow_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

DIRECTORY_REFRESHES = Counter(
	"nomadnow_directory_refreshes_total",
	"Directory refresh cycles by trigger and outcome",
	["trigger", "outcome"],
)

DIRECTORY_REFRESH_DURATION = Histogram(
	"nomadnow_directory_refresh_duration_seconds",
	"Aggregation + enrichment + filtering duration per refresh cycle",
	buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

DIRECTORY_COALESCED = Counter(
	"nomadnow_directory_refresh_coalesced_total",
	"Refresh triggers that joined an in-flight refresh",
)

DIRECTORY_SOURCE_FAILURES = Counter(
	"nomadnow_directory_source_failures_total",
	"Aggregation source failures",
	["source"],
)

DIRECTORY_SAMPLE_FALLBACKS = Counter(
	"nomadnow_directory_sample_fallbacks_total",
	"Refresh cycles served from the sample data tier",
)

DIRECTORY_RECORDS = Gauge(
	"nomadnow_directory_records",
	"Records in the latest snapshot by stage",
	["stage"],
)

PREFERENCE_WRITES = Counter(
	"nomadnow_preference_writes_total",
	"Preference store writes by operation and outcome",
	["op", "outcome"],
)

INVITATIONS_DISPATCHED = Counter(
	"nomadnow_invitations_total",
	"Invitation dispatch attempts by type and result",
	["type", "result"],
)

ACTIVE_DIRECTORIES = Gauge(
	"nomadnow_directory_engines_active",
	"Directory engines currently held by the registry",
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_refresh(trigger: str, outcome: str) -> None:
	DIRECTORY_REFRESHES.labels(trigger=trigger, outcome=outcome).inc()


def observe_refresh_duration(elapsed_seconds: float) -> None:
	DIRECTORY_REFRESH_DURATION.observe(elapsed_seconds)


def inc_refresh_coalesced() -> None:
	DIRECTORY_COALESCED.inc()


def inc_source_failure(source: str) -> None:
	DIRECTORY_SOURCE_FAILURES.labels(source=source).inc()


def inc_sample_fallback() -> None:
	DIRECTORY_SAMPLE_FALLBACKS.inc()


def set_snapshot_sizes(*, aggregated: int, visible: int, filtered: int) -> None:
	DIRECTORY_RECORDS.labels(stage="aggregated").set(aggregated)
	DIRECTORY_RECORDS.labels(stage="visible").set(visible)
	DIRECTORY_RECORDS.labels(stage="filtered").set(filtered)


def inc_preference_write(op: str, outcome: str) -> None:
	PREFERENCE_WRITES.labels(op=op, outcome=outcome).inc()


def inc_invitation(kind: str, result: str) -> None:
	INVITATIONS_DISPATCHED.labels(type=kind, result=result).inc()


def set_active_directories(count: int) -> None:
	ACTIVE_DIRECTORIES.set(count)
