"""Hourly decay of the daily confidence meter for idle users."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from app.domain.quests import policy
from app.infra.postgres import get_pool
from app.maintenance.notifications import CONFIDENCE_LOW, insert_notification

logger = logging.getLogger(__name__)

LOW_TITLE = "Your Confidence Meter is Low! 💪"
LOW_MESSAGE = "Your confidence meter has dropped. Complete a quest to boost your confidence!"


@dataclass(slots=True)
class DecayResult:
	updated: int = 0
	notified: int = 0


def _as_utc(value: datetime) -> datetime:
	return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


async def decay_confidence_meters(*, now: Optional[datetime] = None) -> DecayResult:
	"""Decay every positive meter since its last decay and warn users who just dropped low."""

	now = now or datetime.now(timezone.utc)
	result = DecayResult()
	pool = await get_pool()
	async with pool.acquire() as conn:
		rows = await conn.fetch(
			"""
			SELECT us.user_id, us.daily_confidence_meter, us.last_confidence_decay_at,
				us.last_quest_completed_at, us.created_at, p.notification_preferences
			FROM user_stats us
			LEFT JOIN profiles p ON p.user_id = us.user_id
			WHERE us.daily_confidence_meter > 0
			"""
		)
		for row in rows:
			since = row["last_confidence_decay_at"] or row["last_quest_completed_at"] or row["created_at"]
			if since is None:
				continue
			hours = (now - _as_utc(since)).total_seconds() / 3600.0
			if hours <= 0:
				continue
			before = float(row["daily_confidence_meter"])
			after = policy.confidence_decay(before, hours)
			user_id = str(row["user_id"])
			await conn.execute(
				"""
				UPDATE user_stats
				SET daily_confidence_meter = $2, last_confidence_decay_at = $3
				WHERE user_id = $1
				""",
				user_id,
				after,
				now,
			)
			result.updated += 1
			if not policy.crossed_low_confidence(before, after):
				continue
			if not policy.notification_opt_in(row["notification_preferences"], policy.PREF_CONFIDENCE_LOW):
				continue
			await insert_notification(
				conn,
				user_id=user_id,
				kind=CONFIDENCE_LOW,
				title=LOW_TITLE,
				message=LOW_MESSAGE,
				data={"type": "confidence_low", "confidenceLevel": after},
				created_at=now,
			)
			result.notified += 1
	logger.info("confidence_decay_complete", extra={"updated": result.updated, "notified": result.notified})
	return result
