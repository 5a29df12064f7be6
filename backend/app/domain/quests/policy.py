"""Policy constants and pure helpers for quest integrity & engagement."""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from typing import Any, Optional

from app.domain.quests.models import ActionCounts, GoalType, QuestAction


# --- Integrity detection thresholds ---

BURST_WINDOW = timedelta(minutes=5)
BURST_ACTION_LIMIT = 8            # more than this many actions in the window fires
BURST_POINTS_PER_ACTION = 10.0

RATE_LIMIT_PER_MINUTE = 2.0
RATE_ELAPSED_FLOOR_MINUTES = 0.1  # avoids huge rates in the first seconds of a quest
RATE_POINTS_PER_UNIT = 20.0

INTERVAL_SAMPLE_SIZE = 5          # most recent log rows inspected for gaps
INTERVAL_FLOOR_SECONDS = 10.0
INTERVAL_POINTS_PER_SECOND = 5.0
INTERVAL_CAP = 50.0

REALISTIC_MINUTES_PER_ACTION = 0.5

REPEAT_OFFENDER_WINDOW = timedelta(days=30)
REPEAT_OFFENDER_LIMIT = 2
REPEAT_OFFENDER_POINTS = 10.0     # per flagged quest, clamped only by the final cap

RAPID_START_MINUTES = 1.0
RAPID_START_ACTIONS = 3
RAPID_START_POINTS = 10.0

RULE_CAP = 100.0
SCORE_MAX = 100.0
FLAG_THRESHOLD = 50.0

# --- Confidence meter ---

CONFIDENCE_MAX = 100.0
CONFIDENCE_LOW = 20.0
CONFIDENCE_DECAY_PER_HOUR = 2.0

DIFFICULTY_CONFIDENCE_BOOST = {
	"easy": 5.0,
	"medium": 10.0,
	"hard": 15.0,
	"expert": 20.0,
}
DEFAULT_CONFIDENCE_BOOST = DIFFICULTY_CONFIDENCE_BOOST["medium"]

# --- Leaderboard nudges ---

FALL_BEHIND_RECENT_WINDOW = timedelta(hours=24)
LEADERBOARD_PERIODS = ("day", "week", "month")

PREF_CONFIDENCE_LOW = "confidenceLow"
PREF_LEADERBOARD_FALL_BEHIND = "leaderboardFallBehind"


def apply_action(counts: ActionCounts, action: QuestAction) -> ActionCounts:
	"""Return the counts after recording `action`."""

	return ActionCounts(
		no=counts.no + (1 if action is QuestAction.NO else 0),
		yes=counts.yes + (1 if action is QuestAction.YES else 0),
		action=counts.action + (1 if action is QuestAction.ACTION else 0),
	)


def goal_progress(goal_type: GoalType, counts: ActionCounts) -> int:
	if goal_type is GoalType.COLLECT_NOS:
		return counts.no
	if goal_type is GoalType.COLLECT_YES:
		return counts.yes
	return counts.action


def goal_reached(goal_type: GoalType, counts: ActionCounts, goal_count: int) -> bool:
	return goal_progress(goal_type, counts) >= goal_count


def confidence_boost(difficulty: Optional[str]) -> float:
	"""Harder quests give a bigger confidence boost."""

	if not difficulty:
		return DEFAULT_CONFIDENCE_BOOST
	return DIFFICULTY_CONFIDENCE_BOOST.get(difficulty.lower(), DEFAULT_CONFIDENCE_BOOST)


def boosted_confidence(current: float, difficulty: Optional[str]) -> float:
	return min(CONFIDENCE_MAX, current + confidence_boost(difficulty))


def next_streak(
	current: int,
	longest: int,
	last_active_at: Optional[datetime],
	now: datetime,
) -> tuple[int, int]:
	"""Return (current, longest) streak after activity at `now`.

	Same calendar day keeps the streak, the following day extends it, any
	longer gap starts over at 1.
	"""

	if last_active_at is None:
		streak = 1
	else:
		days = (now.date() - last_active_at.date()).days
		if days <= 0:
			streak = max(current, 1)
		elif days == 1:
			streak = current + 1
		else:
			streak = 1
	return streak, max(streak, longest)


def confidence_decay(meter: float, hours_since: float) -> float:
	"""Decay the meter by a fixed amount per idle hour, never below zero."""

	if hours_since <= 0:
		return meter
	return max(0.0, meter - min(meter, hours_since * CONFIDENCE_DECAY_PER_HOUR))


def crossed_low_confidence(before: float, after: float) -> bool:
	return before >= CONFIDENCE_LOW and after < CONFIDENCE_LOW


def leaderboard_period_starts(now: datetime) -> dict[str, datetime]:
	"""Start of the current day, ISO week (Monday) and month for `now`."""

	day = now.replace(hour=0, minute=0, second=0, microsecond=0)
	return {
		"day": day,
		"week": day - timedelta(days=day.weekday()),
		"month": day.replace(day=1),
	}


def is_falling_behind(rank: int, total: int, period_completions: int, completed_recently: bool) -> bool:
	"""Bottom half without a recent completion, or nothing completed this period."""

	if period_completions == 0:
		return True
	return rank > total / 2 and not completed_recently


def period_label(period: str) -> str:
	return {"day": "daily", "week": "weekly", "month": "monthly"}.get(period, period)


def notification_opt_in(raw_preferences: Any, key: str) -> bool:
	"""Users are opted in unless their preferences explicitly say false."""

	if not raw_preferences:
		return True
	prefs = raw_preferences
	if isinstance(raw_preferences, str):
		try:
			prefs = json.loads(raw_preferences)
		except ValueError:
			return True
	if not isinstance(prefs, dict):
		return True
	return prefs.get(key) is not False
