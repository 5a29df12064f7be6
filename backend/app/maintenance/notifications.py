"""In-app notification rows written by maintenance jobs."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict
from uuid import uuid4

import asyncpg

from app.obs import metrics as obs_metrics

CONFIDENCE_LOW = "CONFIDENCE_LOW"
LEADERBOARD_FALL_BEHIND = "LEADERBOARD_FALL_BEHIND"


async def insert_notification(
	conn: asyncpg.Connection,
	*,
	user_id: str,
	kind: str,
	title: str,
	message: str,
	data: Dict[str, Any],
	created_at: datetime,
) -> str:
	notification_id = str(uuid4())
	await conn.execute(
		"""
		INSERT INTO notifications (id, user_id, type, title, message, data, created_at)
		VALUES ($1, $2, $3, $4, $5, $6, $7)
		""",
		notification_id,
		user_id,
		kind,
		title,
		message,
		json.dumps(data, separators=(",", ":")),
		created_at,
	)
	obs_metrics.inc_notification_created(kind)
	return notification_id
