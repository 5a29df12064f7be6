import json
from datetime import datetime, timezone

import pytest

from app.maintenance import leaderboard_nudges

NOW = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)


class NudgeConnection:
	def __init__(self, rankings, *, recent=(), notified=()) -> None:
		self.rankings = rankings
		self.recent = list(recent)
		self.notified = list(notified)
		self.executed: list[tuple[str, tuple[object, ...]]] = []
		self.ranking_windows: list[datetime] = []

	async def fetch(self, query: str, *params):
		query = " ".join(query.split())
		if "FROM notifications" in query:
			return [{"user_id": user_id} for user_id in self.notified]
		if "SELECT DISTINCT user_id FROM user_quests" in query:
			return [{"user_id": user_id} for user_id in self.recent]
		if "FROM user_stats" in query:
			self.ranking_windows.append(params[0])
			return self.rankings[len(self.ranking_windows) - 1]
		raise AssertionError(f"Unexpected query: {query}")

	async def execute(self, query: str, *params):
		self.executed.append((" ".join(query.split()), params))
		return "EXECUTE 1"


class StaticPool:
	def __init__(self, conn) -> None:
		self._conn = conn

	def acquire(self):
		conn = self._conn

		class _Ctx:
			async def __aenter__(self_inner):
				return conn

			async def __aexit__(self_inner, exc_type, exc, tb):
				return False

		return _Ctx()


def ranking(*entries):
	return [{"user_id": user_id, "completions": count, "notification_preferences": prefs} for user_id, count, prefs in entries]


@pytest.fixture
def install_pool(monkeypatch):
	def _install(conn):
		async def fake_get_pool():
			return StaticPool(conn)

		monkeypatch.setattr(leaderboard_nudges, "get_pool", fake_get_pool)
		return conn

	return _install


@pytest.mark.asyncio
async def test_bottom_half_without_recent_completion_is_nudged(install_pool):
	day = ranking(("a", 3, None), ("b", 2, None), ("c", 1, None), ("d", 1, None))
	conn = install_pool(NudgeConnection([day, day, day], recent=["a", "b", "c"]))

	sent = await leaderboard_nudges.check_leaderboard_fall_behind(now=NOW)

	assert sent == 1
	(notification,) = conn.executed
	params = notification[1]
	assert params[1:3] == ("d", "LEADERBOARD_FALL_BEHIND")
	assert params[4] == "You're ranked #4 of 4. Complete a quest to climb the daily leaderboard!"
	assert json.loads(params[5]) == {"type": "leaderboard_fall_behind", "period": "day", "rank": 4, "totalUsers": 4}
	assert conn.ranking_windows == [
		datetime(2025, 3, 14, tzinfo=timezone.utc),
		datetime(2025, 3, 10, tzinfo=timezone.utc),
		datetime(2025, 3, 1, tzinfo=timezone.utc),
	]


@pytest.mark.asyncio
async def test_zero_completions_nudges_even_top_ranked_users(install_pool):
	empty = ranking(("a", 0, None), ("b", 0, None))
	busy = ranking(("a", 4, None), ("b", 3, None))
	conn = install_pool(NudgeConnection([empty, busy, busy], recent=["a", "b"]))

	sent = await leaderboard_nudges.check_leaderboard_fall_behind(now=NOW)

	assert sent == 2
	assert [params[1] for _, params in conn.executed] == ["a", "b"]


@pytest.mark.asyncio
async def test_at_most_one_nudge_per_user_per_day(install_pool):
	empty = ranking(("a", 0, None), ("b", 0, None))
	conn = install_pool(NudgeConnection([empty, empty, empty], notified=["b"]))

	sent = await leaderboard_nudges.check_leaderboard_fall_behind(now=NOW)

	assert sent == 1
	assert [params[1] for _, params in conn.executed] == ["a"]


@pytest.mark.asyncio
async def test_opt_out_is_respected(install_pool):
	prefs = json.dumps({"leaderboardFallBehind": False})
	empty = ranking(("a", 0, prefs), ("b", 0, {"leaderboardFallBehind": True}))
	conn = install_pool(NudgeConnection([empty, empty, empty]))

	sent = await leaderboard_nudges.check_leaderboard_fall_behind(now=NOW)

	assert sent == 1
	assert conn.executed[0][1][1] == "b"
	assert "weekly" not in conn.executed[0][1][4]
