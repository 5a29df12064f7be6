from datetime import datetime, timezone

import pytest

from app.domain.quests import policy
from app.domain.quests.models import ActionCounts, GoalType, QuestAction


def test_apply_action_increments_only_matching_counter():
	counts = policy.apply_action(ActionCounts(no=2, yes=1, action=0), QuestAction.YES)
	assert (counts.no, counts.yes, counts.action) == (2, 2, 0)
	assert counts.total == 4


@pytest.mark.parametrize(
	"goal_type, counts, reached",
	[
		(GoalType.COLLECT_NOS, ActionCounts(no=5), True),
		(GoalType.COLLECT_NOS, ActionCounts(no=4, yes=3), False),
		(GoalType.COLLECT_YES, ActionCounts(yes=5), True),
		(GoalType.TAKE_ACTION, ActionCounts(no=9, action=4), False),
	],
)
def test_goal_reached_counts_only_goal_action(goal_type, counts, reached):
	assert policy.goal_reached(goal_type, counts, 5) is reached


def test_confidence_boost_scales_with_difficulty():
	assert policy.confidence_boost("EASY") == 5
	assert policy.confidence_boost("expert") == 20
	assert policy.confidence_boost(None) == 10
	assert policy.confidence_boost("legendary") == 10
	assert policy.boosted_confidence(95, "hard") == 100


def test_next_streak_same_day_next_day_and_gap():
	now = datetime(2025, 3, 14, 18, 0, tzinfo=timezone.utc)
	assert policy.next_streak(0, 0, None, now) == (1, 1)
	assert policy.next_streak(3, 7, datetime(2025, 3, 14, 8, 0, tzinfo=timezone.utc), now) == (3, 7)
	assert policy.next_streak(3, 3, datetime(2025, 3, 13, 23, 0, tzinfo=timezone.utc), now) == (4, 4)
	assert policy.next_streak(6, 9, datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc), now) == (1, 9)


def test_confidence_decay_two_points_per_hour_floor_zero():
	assert policy.confidence_decay(50, 3) == 44
	assert policy.confidence_decay(5, 10) == 0
	assert policy.confidence_decay(40, 0) == 40
	assert policy.crossed_low_confidence(22, 18) is True
	assert policy.crossed_low_confidence(18, 16) is False


def test_leaderboard_period_starts():
	starts = policy.leaderboard_period_starts(datetime(2025, 3, 14, 18, 30, tzinfo=timezone.utc))
	assert starts["day"] == datetime(2025, 3, 14, tzinfo=timezone.utc)
	assert starts["week"] == datetime(2025, 3, 10, tzinfo=timezone.utc)
	assert starts["month"] == datetime(2025, 3, 1, tzinfo=timezone.utc)


def test_is_falling_behind():
	assert policy.is_falling_behind(1, 10, 0, True) is True
	assert policy.is_falling_behind(8, 10, 2, False) is True
	assert policy.is_falling_behind(8, 10, 2, True) is False
	assert policy.is_falling_behind(3, 10, 2, False) is False


@pytest.mark.parametrize(
	"raw, expected",
	[
		(None, True),
		("", True),
		("not json", True),
		('{"confidenceLow": false}', False),
		('{"confidenceLow": true}', True),
		({"confidenceLow": False}, False),
		("[1, 2]", True),
	],
)
def test_notification_opt_in_defaults_to_true(raw, expected):
	assert policy.notification_opt_in(raw, policy.PREF_CONFIDENCE_LOW) is expected
