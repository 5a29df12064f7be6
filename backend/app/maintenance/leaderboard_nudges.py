"""Notify users who are falling behind on the quest completion leaderboards."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional, Set

import asyncpg

from app.domain.quests import policy
from app.infra.postgres import get_pool
from app.maintenance.notifications import LEADERBOARD_FALL_BEHIND, insert_notification

logger = logging.getLogger(__name__)

FALL_BEHIND_TITLE = "📉 You're Falling Behind!"


async def _already_notified(conn: asyncpg.Connection, since: datetime) -> Set[str]:
	rows = await conn.fetch(
		"""
		SELECT DISTINCT user_id
		FROM notifications
		WHERE type = $1 AND created_at >= $2
		""",
		LEADERBOARD_FALL_BEHIND,
		since,
	)
	return {str(row["user_id"]) for row in rows}


async def _recent_completers(conn: asyncpg.Connection, since: datetime) -> Set[str]:
	rows = await conn.fetch(
		"""
		SELECT DISTINCT user_id
		FROM user_quests
		WHERE status = 'COMPLETED' AND completed_at >= $1
		""",
		since,
	)
	return {str(row["user_id"]) for row in rows}


async def _rankings(conn: asyncpg.Connection, since: datetime) -> list[asyncpg.Record]:
	return await conn.fetch(
		"""
		SELECT us.user_id, COUNT(uq.id) AS completions, p.notification_preferences
		FROM user_stats us
		LEFT JOIN user_quests uq
			ON uq.user_id = us.user_id AND uq.status = 'COMPLETED' AND uq.completed_at >= $1
		LEFT JOIN profiles p ON p.user_id = us.user_id
		GROUP BY us.user_id, p.notification_preferences
		ORDER BY completions DESC, us.user_id
		""",
		since,
	)


async def check_leaderboard_fall_behind(*, now: Optional[datetime] = None) -> int:
	"""Send at most one fall-behind notification per user per day; returns how many were sent."""

	now = now or datetime.now(timezone.utc)
	starts = policy.leaderboard_period_starts(now)
	sent = 0
	pool = await get_pool()
	async with pool.acquire() as conn:
		notified = await _already_notified(conn, starts["day"])
		recent = await _recent_completers(conn, now - policy.FALL_BEHIND_RECENT_WINDOW)
		for period in policy.LEADERBOARD_PERIODS:
			rows = await _rankings(conn, starts[period])
			total = len(rows)
			for index, row in enumerate(rows):
				user_id = str(row["user_id"])
				rank = index + 1
				if user_id in notified:
					continue
				if not policy.is_falling_behind(rank, total, int(row["completions"] or 0), user_id in recent):
					continue
				if not policy.notification_opt_in(row["notification_preferences"], policy.PREF_LEADERBOARD_FALL_BEHIND):
					continue
				await insert_notification(
					conn,
					user_id=user_id,
					kind=LEADERBOARD_FALL_BEHIND,
					title=FALL_BEHIND_TITLE,
					message=(
						f"You're ranked #{rank} of {total}. Complete a quest to climb the "
						f"{policy.period_label(period)} leaderboard!"
					),
					data={"type": "leaderboard_fall_behind", "period": period, "rank": rank, "totalUsers": total},
					created_at=now,
				)
				notified.add(user_id)
				sent += 1
	logger.info("leaderboard_fall_behind_complete", extra={"notified": sent})
	return sent
