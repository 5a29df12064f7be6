"""Postgres access for user quests, the quest action log and integrity audit rows."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional
from uuid import uuid4

import asyncpg

from app.domain.quests import policy
from app.domain.quests.models import (
	ActionCounts,
	ActionEvent,
	IntegrityEvent,
	IntegrityVerdict,
	QuestAction,
	UserQuest,
	WorkUnit,
)
from app.infra.postgres import get_pool

_USER_QUEST_COLUMNS = """
	uq.id, uq.user_id, uq.quest_id, uq.status, uq.no_count, uq.yes_count, uq.action_count,
	uq.started_at, uq.completed_at, uq.is_flagged_as_suspicious, uq.suspicious_score,
	q.title, q.goal_type, q.goal_count, q.difficulty
"""


class QuestRepository:
	"""Reads back the integrity scorer and the action recording writes."""

	@asynccontextmanager
	async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				yield conn

	async def get_user_quest(self, user_quest_id: str) -> Optional[UserQuest]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				f"""
				SELECT {_USER_QUEST_COLUMNS}
				FROM user_quests uq
				JOIN quests q ON q.id = uq.quest_id
				WHERE uq.id = $1
				""",
				user_quest_id,
			)
		return UserQuest.from_record(row) if row else None

	async def get_work_unit(self, user_quest_id: str) -> Optional[WorkUnit]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				SELECT uq.id, uq.user_id, uq.started_at, q.goal_count
				FROM user_quests uq
				JOIN quests q ON q.id = uq.quest_id
				WHERE uq.id = $1
				""",
				user_quest_id,
			)
		if not row:
			return None
		return WorkUnit(
			id=str(row["id"]),
			user_id=str(row["user_id"]),
			started_at=row["started_at"],
			goal_count=int(row["goal_count"]),
		)

	async def count_recent_actions(self, user_quest_id: str, since: datetime) -> int:
		pool = await get_pool()
		async with pool.acquire() as conn:
			count = await conn.fetchval(
				"""
				SELECT COUNT(*)
				FROM quest_action_logs
				WHERE user_quest_id = $1 AND recorded_at >= $2
				""",
				user_quest_id,
				since,
			)
		return int(count or 0)

	async def recent_actions(self, user_quest_id: str, limit: int = policy.INTERVAL_SAMPLE_SIZE) -> list[ActionEvent]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT id, user_quest_id, action, recorded_at
				FROM quest_action_logs
				WHERE user_quest_id = $1
				ORDER BY recorded_at DESC
				LIMIT $2
				""",
				user_quest_id,
				limit,
			)
		return [ActionEvent.from_record(row) for row in rows]

	async def count_flagged_since(self, user_id: str, since: datetime) -> int:
		pool = await get_pool()
		async with pool.acquire() as conn:
			count = await conn.fetchval(
				"""
				SELECT COUNT(*)
				FROM user_quests
				WHERE user_id = $1 AND is_flagged_as_suspicious = TRUE AND created_at >= $2
				""",
				user_id,
				since,
			)
		return int(count or 0)

	async def list_integrity_events(self, user_quest_id: str, limit: int = 10) -> list[IntegrityEvent]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT id, user_quest_id, score, reasons, signals, created_at
				FROM quest_integrity_events
				WHERE user_quest_id = $1
				ORDER BY created_at DESC
				LIMIT $2
				""",
				user_quest_id,
				limit,
			)
		return [IntegrityEvent.from_record(row) for row in rows]

	# --- writes, always inside `transaction()` ---

	async def append_action(
		self,
		conn: asyncpg.Connection,
		user_quest_id: str,
		action: QuestAction,
		recorded_at: datetime,
	) -> str:
		log_id = str(uuid4())
		await conn.execute(
			"""
			INSERT INTO quest_action_logs (id, user_quest_id, action, recorded_at)
			VALUES ($1, $2, $3, $4)
			""",
			log_id,
			user_quest_id,
			action.value,
			recorded_at,
		)
		return log_id

	async def lock_user_quest(self, conn: asyncpg.Connection, user_quest_id: str) -> Optional[UserQuest]:
		"""Re-read the quest row under a row lock so concurrent records serialise."""

		row = await conn.fetchrow(
			f"""
			SELECT {_USER_QUEST_COLUMNS}
			FROM user_quests uq
			JOIN quests q ON q.id = uq.quest_id
			WHERE uq.id = $1
			FOR UPDATE OF uq
			""",
			user_quest_id,
		)
		return UserQuest.from_record(row) if row else None

	async def update_progress(self, conn: asyncpg.Connection, user_quest_id: str, counts: ActionCounts) -> None:
		await conn.execute(
			"""
			UPDATE user_quests
			SET no_count = $2, yes_count = $3, action_count = $4
			WHERE id = $1
			""",
			user_quest_id,
			counts.no,
			counts.yes,
			counts.action,
		)

	async def mark_completed(self, conn: asyncpg.Connection, user_quest_id: str, completed_at: datetime) -> bool:
		"""Move the quest into COMPLETED; False when another writer already did."""

		result = await conn.execute(
			"""
			UPDATE user_quests
			SET status = 'COMPLETED', completed_at = $2
			WHERE id = $1 AND status <> 'COMPLETED'
			""",
			user_quest_id,
			completed_at,
		)
		return bool(result) and result.split()[-1] != "0"

	async def mark_flagged(self, conn: asyncpg.Connection, user_quest_id: str, score: float) -> None:
		await conn.execute(
			"""
			UPDATE user_quests
			SET is_flagged_as_suspicious = TRUE,
				suspicious_score = GREATEST(COALESCE(suspicious_score, 0), $2)
			WHERE id = $1
			""",
			user_quest_id,
			score,
		)

	async def insert_integrity_event(
		self,
		conn: asyncpg.Connection,
		*,
		user_quest_id: str,
		user_id: str,
		verdict: IntegrityVerdict,
		created_at: datetime,
	) -> str:
		event_id = str(uuid4())
		await conn.execute(
			"""
			INSERT INTO quest_integrity_events (id, user_quest_id, user_id, score, reasons, signals, created_at)
			VALUES ($1, $2, $3, $4, $5, $6, $7)
			""",
			event_id,
			user_quest_id,
			user_id,
			verdict.suspicious_score,
			verdict.reasons,
			verdict.signals,
			created_at,
		)
		return event_id

	async def apply_completion_stats(
		self,
		conn: asyncpg.Connection,
		*,
		user_id: str,
		difficulty: Optional[str],
		now: datetime,
	) -> float:
		"""Extend the streak and boost the confidence meter; returns the new meter."""

		row = await conn.fetchrow(
			"""
			SELECT current_streak, longest_streak, daily_confidence_meter, last_active_at
			FROM user_stats
			WHERE user_id = $1
			FOR UPDATE
			""",
			user_id,
		)
		current = int(row["current_streak"] or 0) if row else 0
		longest = int(row["longest_streak"] or 0) if row else 0
		meter = float(row["daily_confidence_meter"] or 0.0) if row else 0.0
		last_active = row["last_active_at"] if row else None
		streak, best = policy.next_streak(current, longest, last_active, now)
		new_meter = policy.boosted_confidence(meter, difficulty)
		await conn.execute(
			"""
			INSERT INTO user_stats (
				user_id, current_streak, longest_streak, daily_confidence_meter,
				last_active_at, last_quest_completed_at, last_confidence_decay_at
			)
			VALUES ($1, $2, $3, $4, $5, $5, $5)
			ON CONFLICT (user_id) DO UPDATE
			SET current_streak = EXCLUDED.current_streak,
				longest_streak = EXCLUDED.longest_streak,
				daily_confidence_meter = EXCLUDED.daily_confidence_meter,
				last_active_at = EXCLUDED.last_active_at,
				last_quest_completed_at = EXCLUDED.last_quest_completed_at,
				last_confidence_decay_at = EXCLUDED.last_confidence_decay_at
			""",
			user_id,
			streak,
			best,
			new_meter,
			now,
		)
		return new_meter
