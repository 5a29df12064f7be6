"""Quest action recording with integrity evaluation."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from app.domain.quests import integrity, outbox, policy, sockets
from app.domain.quests.models import STATUS_COMPLETED, IntegrityVerdict, QuestAction, UserQuest
from app.domain.quests.repository import QuestRepository
from app.domain.quests.schemas import (
	IntegrityEventSchema,
	IntegritySchema,
	IntegrityStatusResponse,
	RecordActionResponse,
)
from app.infra.auth import AuthenticatedUser
from app.obs import logging as obs_logging
from app.obs import metrics as obs_metrics
from app.settings import settings

logger = logging.getLogger(__name__)


class QuestError(Exception):
	"""Base class for quest domain errors."""

	code = "quest_error"


class QuestNotFound(QuestError):
	code = "quest_not_found"


class QuestActionService:
	"""Records quest actions; the integrity verdict never blocks a write."""

	def __init__(self, repository: Optional[QuestRepository] = None) -> None:
		self._repo = repository or QuestRepository()

	async def _load_owned(self, user_quest_id: str, auth_user: AuthenticatedUser) -> UserQuest:
		user_quest = await self._repo.get_user_quest(user_quest_id)
		# Someone else's quest is reported as missing.
		if user_quest is None or user_quest.user_id != str(auth_user.id):
			raise QuestNotFound(user_quest_id)
		return user_quest

	async def _evaluate(self, user_quest: UserQuest, action: QuestAction, now: datetime) -> IntegrityVerdict:
		if not settings.integrity_enabled:
			return IntegrityVerdict.inert()
		return await integrity.detect_suspicious_activity(
			user_quest.id,
			user_quest.user_id,
			action,
			user_quest.counts.total,
			reader=self._repo,
			now=now,
		)

	async def record_action(
		self,
		user_quest_id: str,
		auth_user: AuthenticatedUser,
		action: QuestAction,
		*,
		now: Optional[datetime] = None,
	) -> RecordActionResponse:
		now = now or datetime.now(timezone.utc)
		tokens = obs_logging.bind_context(user_quest_id=str(user_quest_id))
		try:
			return await self._record(user_quest_id, auth_user, action, now)
		finally:
			obs_logging.reset_context(tokens)

	async def _record(
		self,
		user_quest_id: str,
		auth_user: AuthenticatedUser,
		action: QuestAction,
		now: datetime,
	) -> RecordActionResponse:
		user_quest = await self._load_owned(user_quest_id, auth_user)

		# Scored before the new log row exists; the scorer counts this action itself.
		verdict = await self._evaluate(user_quest, action, now)

		newly_completed = False
		async with self._repo.transaction() as conn:
			locked = await self._repo.lock_user_quest(conn, user_quest.id)
			if locked is None:
				raise QuestNotFound(user_quest_id)
			# Counts come from the locked row; a concurrent record may have landed since the read above.
			counts = policy.apply_action(locked.counts, action)
			completed = policy.goal_reached(locked.goal_type, counts, locked.goal_count)
			await self._repo.append_action(conn, locked.id, action, now)
			await self._repo.update_progress(conn, locked.id, counts)
			if completed and locked.status != STATUS_COMPLETED:
				newly_completed = await self._repo.mark_completed(conn, locked.id, now)
			if verdict.should_flag:
				await self._repo.mark_flagged(conn, locked.id, verdict.suspicious_score)
				await self._repo.insert_integrity_event(
					conn,
					user_quest_id=locked.id,
					user_id=locked.user_id,
					verdict=verdict,
					created_at=now,
				)
			if newly_completed:
				await self._repo.apply_completion_stats(
					conn,
					user_id=locked.user_id,
					difficulty=locked.difficulty,
					now=now,
				)

		obs_metrics.inc_quest_action(action.value)
		if newly_completed:
			obs_metrics.inc_quest_completed()
		if verdict.should_flag:
			await self._publish_verdict(user_quest, verdict)

		return RecordActionResponse(
			success=True,
			completed=completed,
			no_count=counts.no,
			yes_count=counts.yes,
			action_count=counts.action,
			integrity=IntegritySchema.from_verdict(verdict),
		)

	async def _publish_verdict(self, user_quest: UserQuest, verdict: IntegrityVerdict) -> None:
		try:
			await outbox.record_integrity_event(user_quest.id, user_quest.user_id, verdict)
		except Exception:
			obs_metrics.inc_integrity_consumer_failure("outbox")
			logger.warning("quest_integrity_outbox_failed", extra={"user_quest_id": user_quest.id}, exc_info=True)
		if not verdict.motivational_message:
			return
		try:
			await sockets.emit_integrity_notice(user_quest.user_id, user_quest.id, verdict.motivational_message)
		except Exception:
			obs_metrics.inc_integrity_consumer_failure("socket")
			logger.warning("quest_integrity_emit_failed", extra={"user_quest_id": user_quest.id}, exc_info=True)

	async def integrity_status(self, user_quest_id: str, auth_user: AuthenticatedUser) -> IntegrityStatusResponse:
		user_quest = await self._load_owned(user_quest_id, auth_user)
		events = await self._repo.list_integrity_events(user_quest.id)
		return IntegrityStatusResponse(
			user_quest_id=user_quest.id,
			flagged=user_quest.is_flagged_as_suspicious,
			score=user_quest.suspicious_score,
			events=[IntegrityEventSchema.from_event(event) for event in events],
		)
