"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Summary


REQUEST_COUNTER = Counter(
	"rh_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"rh_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

QUEST_ACTIONS_RECORDED = Counter(
	"rh_quest_actions_recorded_total",
	"Quest actions recorded",
	["action"],
)

QUESTS_COMPLETED = Counter(
	"rh_quests_completed_total",
	"Quests completed through action recording",
)

INTEGRITY_EVALUATIONS = Counter(
	"rh_quest_integrity_evaluations_total",
	"Quest integrity evaluations by outcome",
	["outcome"],
)

INTEGRITY_SIGNALS = Counter(
	"rh_quest_integrity_signals_total",
	"Quest integrity detection rules fired",
	["signal"],
)

INTEGRITY_SCORE = Histogram(
	"rh_quest_integrity_score",
	"Distribution of quest integrity suspicion scores",
	buckets=(0, 10, 20, 30, 40, 50, 60, 70, 80, 90, 100),
)

INTEGRITY_CONSUMER_FAILURES = Counter(
	"rh_quest_integrity_consumer_failures_total",
	"Failures while publishing integrity verdicts",
	["consumer"],
)

NOTIFICATIONS_CREATED = Counter(
	"rh_notifications_created_total",
	"Notifications created by maintenance jobs",
	["type"],
)

REDIS_UP = Gauge("rh_redis_up", "Redis availability (1=up,0=down)")
REDIS_LATENCY = Summary("rh_redis_latency_seconds", "Redis ping latency (seconds)")

POSTGRES_UP = Gauge("rh_postgres_up", "Postgres availability (1=up,0=down)")
POSTGRES_LATENCY = Summary("rh_postgres_latency_seconds", "Postgres ping latency (seconds)")

BACKGROUND_RUNS = Counter(
	"rh_jobs_runs_total",
	"Background job executions",
	["name", "result"],
)

BACKGROUND_DURATION = Histogram(
	"rh_jobs_duration_seconds",
	"Background job duration",
	["name"],
	buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 15.0, 30.0, 60.0),
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_quest_action(action: str) -> None:
	QUEST_ACTIONS_RECORDED.labels(action=action).inc()


def inc_quest_completed() -> None:
	QUESTS_COMPLETED.inc()


def record_integrity_evaluation(outcome: str, *, score: float | None = None, signals: list[str] | None = None) -> None:
	INTEGRITY_EVALUATIONS.labels(outcome=outcome).inc()
	if score is not None:
		INTEGRITY_SCORE.observe(score)
	for signal in signals or ():
		INTEGRITY_SIGNALS.labels(signal=signal).inc()


def inc_integrity_consumer_failure(consumer: str) -> None:
	INTEGRITY_CONSUMER_FAILURES.labels(consumer=consumer).inc()


def inc_notification_created(kind: str, count: int = 1) -> None:
	NOTIFICATIONS_CREATED.labels(type=kind).inc(count)


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
	POSTGRES_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		POSTGRES_LATENCY.observe(latency_seconds)


def record_job_run(name: str, *, result: str, duration_seconds: float | None = None) -> None:
	BACKGROUND_RUNS.labels(name=name, result=result).inc()
	if duration_seconds is not None:
		BACKGROUND_DURATION.labels(name=name).observe(duration_seconds)
