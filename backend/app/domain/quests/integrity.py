"""Suspicious quest activity detection.

Transparent, never punitive: the verdict tells the caller whether to flag a
quest for audit and which encouragement to show the user, but no outcome of
this module ever blocks the action being recorded.

Inputs are gathered once from the readers, then scored by the pure
`score_activity` function, so the same snapshot and clock always produce the
same verdict.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional, Protocol, Sequence

from app.domain.quests import policy
from app.domain.quests.models import ActionEvent, IntegrityInputs, IntegrityVerdict, QuestAction, WorkUnit
from app.domain.quests.repository import QuestRepository
from app.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


SIGNAL_BURST = "burst_5min"
SIGNAL_RATE = "rate_per_minute"
SIGNAL_INTERVALS = "tight_intervals"
SIGNAL_FAST_COMPLETION = "fast_completion"
SIGNAL_REPEAT_OFFENDER = "repeat_offender"
SIGNAL_RAPID_START = "rapid_start"
SIGNAL_AGGREGATE = "aggregate"

MESSAGES = {
	SIGNAL_BURST: (
		"Hey! We noticed you're completing actions very quickly. Remember, authentic quests take time - "
		'each "NO" should be a real interaction with someone! Take your time and make each action count. '
		"Consider sharing this quest with friends for verification when you complete it! 💪"
	),
	SIGNAL_RATE: (
		"You're moving fast! Remember, each quest action should be a genuine interaction. Slow down and enjoy "
		"the journey - authenticity is what makes quests meaningful! When you complete this quest, share it "
		"with friends for verification to earn a special badge! 🎯"
	),
	SIGNAL_INTERVALS: (
		"Quick actions detected! Each quest action should represent a real moment with someone. Take time "
		"between actions - quality over quantity! When you complete this quest, consider sharing it with "
		"friends for verification to show it's authentic. ✨"
	),
	SIGNAL_FAST_COMPLETION: (
		"You completed this quest very quickly! That's impressive, but make sure each action was authentic. "
		"Share this quest with friends to verify - if 2+ friends verify it, you'll earn a special Silver "
		"Verification Badge! 🏆"
	),
	SIGNAL_REPEAT_OFFENDER: (
		"We've noticed a pattern of fast completions. Remember, the goal is authentic growth, not speed! Take "
		"time with each quest and consider asking friends to verify your completion - verified quests get "
		"special badges! 🌟"
	),
	SIGNAL_RAPID_START: (
		"You're off to a fast start! Remember, each action should be a real, meaningful interaction. Take your "
		"time and enjoy the process. When you complete this quest, share it with friends for verification! 🎉"
	),
	SIGNAL_AGGREGATE: (
		"We noticed some patterns that suggest rushed completion. Remember, authentic quests take time! "
		"Consider sharing this quest with friends for verification when you complete it - verified quests "
		"earn special badges and show your genuine progress! 💎"
	),
}


class IntegrityReader(Protocol):
	"""Read-only access to the quest, its action log and the user's flag history."""

	async def get_work_unit(self, user_quest_id: str) -> Optional[WorkUnit]: ...

	async def count_recent_actions(self, user_quest_id: str, since: datetime) -> int: ...

	async def recent_actions(self, user_quest_id: str, limit: int) -> Sequence[ActionEvent]: ...

	async def count_flagged_since(self, user_id: str, since: datetime) -> int: ...


def _now() -> datetime:
	return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
	if value.tzinfo is None:
		return value.replace(tzinfo=timezone.utc)
	return value


def _check_rate(verdict: IntegrityVerdict, actions_in_window: int, total_actions: int, elapsed_minutes: float) -> None:
	if actions_in_window > policy.BURST_ACTION_LIMIT:
		score = (actions_in_window - policy.BURST_ACTION_LIMIT) * policy.BURST_POINTS_PER_ACTION
		verdict.fire(
			SIGNAL_BURST,
			f"High activity rate: {actions_in_window} actions in the last 5 minutes",
			min(policy.RULE_CAP, score),
			MESSAGES[SIGNAL_BURST],
		)
		return
	per_minute = total_actions / max(elapsed_minutes, policy.RATE_ELAPSED_FLOOR_MINUTES)
	if per_minute > policy.RATE_LIMIT_PER_MINUTE:
		score = (per_minute - policy.RATE_LIMIT_PER_MINUTE) * policy.RATE_POINTS_PER_UNIT
		verdict.fire(
			SIGNAL_RATE,
			f"Unusually high activity rate: {per_minute:.1f} actions per minute",
			min(policy.RULE_CAP, score),
			MESSAGES[SIGNAL_RATE],
		)


def action_intervals(actions: Sequence[ActionEvent]) -> list[float]:
	"""Seconds between consecutive newest-first log entries, skew clamped to 0."""

	ordered = [_as_utc(item.recorded_at) for item in actions[: policy.INTERVAL_SAMPLE_SIZE]]
	return [max(0.0, (newer - older).total_seconds()) for newer, older in zip(ordered, ordered[1:])]


def _check_intervals(verdict: IntegrityVerdict, actions: Sequence[ActionEvent], current_count: int) -> None:
	intervals = action_intervals(actions)
	if not intervals:
		return
	min_interval = min(intervals)
	avg_interval = sum(intervals) / len(intervals)
	if min_interval < policy.INTERVAL_FLOOR_SECONDS and current_count > 0:
		score = (policy.INTERVAL_FLOOR_SECONDS - min_interval) * policy.INTERVAL_POINTS_PER_SECOND
		verdict.fire(
			SIGNAL_INTERVALS,
			f"Actions recorded quickly: {min_interval:.1f}s between actions. Average interval: {avg_interval:.1f}s",
			min(policy.INTERVAL_CAP, score),
			MESSAGES[SIGNAL_INTERVALS],
		)


def _check_fast_completion(verdict: IntegrityVerdict, total_actions: int, goal_count: int, elapsed_minutes: float) -> None:
	if elapsed_minutes <= 0 or total_actions < goal_count:
		return
	minimum_minutes = goal_count * policy.REALISTIC_MINUTES_PER_ACTION
	if minimum_minutes <= 0 or elapsed_minutes >= minimum_minutes:
		return
	score = (minimum_minutes - elapsed_minutes) / minimum_minutes * 100
	verdict.fire(
		SIGNAL_FAST_COMPLETION,
		f"Quest completed quickly: {elapsed_minutes:.1f} minutes for {goal_count} actions",
		min(policy.RULE_CAP, score),
		MESSAGES[SIGNAL_FAST_COMPLETION],
	)


def _check_repeat_offender(verdict: IntegrityVerdict, flagged_quests: int) -> None:
	if flagged_quests <= policy.REPEAT_OFFENDER_LIMIT:
		return
	verdict.fire(
		SIGNAL_REPEAT_OFFENDER,
		f"You have {flagged_quests} flagged quests in the last 30 days",
		flagged_quests * policy.REPEAT_OFFENDER_POINTS,
		MESSAGES[SIGNAL_REPEAT_OFFENDER],
	)


def _check_rapid_start(verdict: IntegrityVerdict, total_actions: int, elapsed_minutes: float) -> None:
	if elapsed_minutes >= policy.RAPID_START_MINUTES or total_actions <= policy.RAPID_START_ACTIONS:
		return
	if elapsed_minutes == 0:
		score = policy.RULE_CAP
	else:
		score = min(policy.RULE_CAP, total_actions / elapsed_minutes * policy.RAPID_START_POINTS)
	verdict.fire(
		SIGNAL_RAPID_START,
		f"{total_actions} actions recorded in first {elapsed_minutes:.1f} minutes",
		score,
		MESSAGES[SIGNAL_RAPID_START],
	)


def score_activity(inputs: IntegrityInputs, *, current_count: int, now: datetime) -> IntegrityVerdict:
	"""Score one recorded action against the gathered snapshot.

	`current_count` is the number of actions recorded before this one; the
	action being evaluated is counted on top of it throughout.
	"""

	verdict = IntegrityVerdict()
	unit = inputs.work_unit
	if unit.started_at is None:
		return verdict

	prior = max(0, current_count)
	total_actions = prior + 1
	elapsed_minutes = max(0.0, (_as_utc(now) - _as_utc(unit.started_at)).total_seconds() / 60.0)

	_check_rate(verdict, inputs.recent_action_count + 1, total_actions, elapsed_minutes)
	_check_intervals(verdict, inputs.recent_actions, prior)
	_check_fast_completion(verdict, total_actions, unit.goal_count, elapsed_minutes)
	_check_repeat_offender(verdict, inputs.flagged_quest_count)
	_check_rapid_start(verdict, total_actions, elapsed_minutes)

	score = max(0.0, min(policy.SCORE_MAX, verdict.suspicious_score))
	if score >= policy.FLAG_THRESHOLD:
		verdict.should_flag = True
		if verdict.motivational_message is None:
			verdict.motivational_message = MESSAGES[SIGNAL_AGGREGATE]
			verdict.signals.append(SIGNAL_AGGREGATE)
	verdict.suspicious_score = round(score, 2)
	return verdict


async def gather_inputs(reader: IntegrityReader, user_quest_id: str, user_id: str, *, now: datetime) -> Optional[IntegrityInputs]:
	"""Read the snapshot for one evaluation, or None when there is nothing to analyse."""

	work_unit = await reader.get_work_unit(user_quest_id)
	if work_unit is None or work_unit.started_at is None:
		return None
	recent_count = await reader.count_recent_actions(user_quest_id, now - policy.BURST_WINDOW)
	recent = await reader.recent_actions(user_quest_id, policy.INTERVAL_SAMPLE_SIZE)
	flagged = await reader.count_flagged_since(user_id, now - policy.REPEAT_OFFENDER_WINDOW)
	return IntegrityInputs(
		work_unit=work_unit,
		recent_action_count=int(recent_count or 0),
		recent_actions=list(recent),
		flagged_quest_count=int(flagged or 0),
	)


def _coerce_action(action: QuestAction | str) -> Optional[QuestAction]:
	try:
		return QuestAction(action)
	except ValueError:
		return None


async def detect_suspicious_activity(
	user_quest_id: str,
	user_id: str,
	action: QuestAction | str,
	current_count: int,
	*,
	reader: Optional[IntegrityReader] = None,
	now: Optional[datetime] = None,
) -> IntegrityVerdict:
	"""Evaluate one action. Any failure degrades to the inert verdict."""

	now = _as_utc(now or _now())
	# Action kind does not influence any rule yet; it is validated for the log only.
	if _coerce_action(action) is None:
		logger.warning("quest_integrity_unknown_action", extra={"user_quest_id": str(user_quest_id), "action": str(action)})
	if current_count < 0:
		logger.warning("quest_integrity_negative_count", extra={"user_quest_id": str(user_quest_id), "current_count": current_count})

	try:
		inputs = await gather_inputs(reader or QuestRepository(), str(user_quest_id), str(user_id), now=now)
		if inputs is None:
			obs_metrics.record_integrity_evaluation("inert")
			return IntegrityVerdict.inert()
		verdict = score_activity(inputs, current_count=current_count, now=now)
	except Exception:
		logger.exception("quest_integrity_failed", extra={"user_quest_id": str(user_quest_id)})
		obs_metrics.record_integrity_evaluation("error")
		return IntegrityVerdict.inert()

	obs_metrics.record_integrity_evaluation(
		"flagged" if verdict.should_flag else "clean",
		score=verdict.suspicious_score,
		signals=verdict.signals,
	)
	return verdict
