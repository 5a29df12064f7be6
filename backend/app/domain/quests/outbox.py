"""Outbox helpers for the quest integrity audit stream."""

from __future__ import annotations

from typing import Any, Dict

from app.domain.quests.models import IntegrityVerdict
from app.infra.redis import redis_client

INTEGRITY_STREAM = "x:quests.integrity"
STREAM_MAXLEN = 2000
COUNTER_TTL_SECONDS = 7 * 24 * 60 * 60


async def append_event(event_type: str, payload: Dict[str, Any]) -> None:
	body = {"type": event_type, **{k: str(v) for k, v in payload.items()}}
	await redis_client.xadd(INTEGRITY_STREAM, body, maxlen=STREAM_MAXLEN, approximate=False)


async def increment_counter(name: str, value: int = 1, **tags: str) -> None:
	tag_str = ",".join(f"{k}={v}" for k, v in sorted(tags.items()))
	key = f"metrics:{name}:{tag_str}" if tag_str else f"metrics:{name}"
	await redis_client.incrby(key, value)
	await redis_client.expire(key, COUNTER_TTL_SECONDS)


async def record_integrity_event(user_quest_id: str, user_id: str, verdict: IntegrityVerdict) -> None:
	"""Publish a flagged verdict for downstream review tooling."""

	await append_event(
		"flagged",
		{
			"user_quest_id": user_quest_id,
			"user_id": user_id,
			"score": verdict.suspicious_score,
			"signals": ",".join(verdict.signals),
			"reasons": " | ".join(verdict.reasons),
		},
	)
	for signal in verdict.signals:
		await increment_counter("quest_integrity_signals_total", signal=signal)
