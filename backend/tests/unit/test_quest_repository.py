from datetime import datetime, timedelta, timezone

import pytest

from app.domain.quests import repository
from app.domain.quests.models import ActionCounts, IntegrityVerdict, QuestAction

NOW = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)


class StaticConnection:
	def __init__(self, *, stats_row=None) -> None:
		self.stats_row = stats_row
		self.execute_result = "UPDATE 1"
		self.row_queries: list[str] = []
		self.executed: list[tuple[str, tuple[object, ...]]] = []
		self.fetched: list[tuple[str, tuple[object, ...]]] = []

	async def fetchrow(self, query: str, *params):
		query = " ".join(query.split()).lower()
		self.row_queries.append(query)
		if "from user_stats" in query:
			return self.stats_row
		if "from user_quests uq" in query and "q.title" in query:
			return {
				"id": params[0],
				"user_id": "user-1",
				"quest_id": "q-1",
				"status": "ACTIVE",
				"no_count": 3,
				"yes_count": 1,
				"action_count": 0,
				"started_at": NOW - timedelta(hours=1),
				"completed_at": None,
				"is_flagged_as_suspicious": False,
				"suspicious_score": None,
				"title": "Collect NOs",
				"goal_type": "COLLECT_NOS",
				"goal_count": 10,
				"difficulty": "easy",
			}
		if "from user_quests uq" in query:
			return {"id": params[0], "user_id": "user-1", "started_at": NOW, "goal_count": 10}
		raise AssertionError(f"Unexpected query: {query}")

	async def fetchval(self, query: str, *params):
		self.fetched.append((" ".join(query.split()), params))
		return 7

	async def fetch(self, query: str, *params):
		self.fetched.append((" ".join(query.split()), params))
		return [
			{"id": "log-2", "user_quest_id": params[0], "action": "NO", "recorded_at": NOW},
			{"id": "log-1", "user_quest_id": params[0], "action": "YES", "recorded_at": NOW - timedelta(seconds=30)},
		]

	async def execute(self, query: str, *params):
		self.executed.append((" ".join(query.split()), params))
		return self.execute_result


class StaticPool:
	def __init__(self, conn: StaticConnection) -> None:
		self._conn = conn

	def acquire(self):
		conn = self._conn

		class _Ctx:
			async def __aenter__(self_inner):
				return conn

			async def __aexit__(self_inner, exc_type, exc, tb):
				return False

		return _Ctx()


@pytest.fixture
def conn(monkeypatch):
	connection = StaticConnection()

	async def fake_get_pool():
		return StaticPool(connection)

	monkeypatch.setattr(repository, "get_pool", fake_get_pool)
	return connection


@pytest.mark.asyncio
async def test_get_user_quest_maps_counts_and_goal(conn):
	quest = await repository.QuestRepository().get_user_quest("uq-1")

	assert quest is not None
	assert quest.counts.total == 4
	assert quest.goal_count == 10
	assert quest.suspicious_score == 0.0
	assert quest.to_work_unit().user_id == "user-1"


@pytest.mark.asyncio
async def test_readers_pass_windows_through(conn):
	repo = repository.QuestRepository()
	since = NOW - timedelta(minutes=5)

	assert await repo.count_recent_actions("uq-1", since) == 7
	assert await repo.count_flagged_since("user-1", since) == 7
	actions = await repo.recent_actions("uq-1", 5)

	assert [action.id for action in actions] == ["log-2", "log-1"]
	assert conn.fetched[0][1] == ("uq-1", since)
	assert "is_flagged_as_suspicious = TRUE" in conn.fetched[1][0]
	assert "ORDER BY recorded_at DESC" in conn.fetched[2][0]
	assert conn.fetched[2][1] == ("uq-1", 5)


@pytest.mark.asyncio
async def test_writes_use_given_connection(conn):
	repo = repository.QuestRepository()
	verdict = IntegrityVerdict()
	verdict.fire("repeat_offender", "You have 3 flagged quests in the last 30 days", 30, "message")

	await repo.append_action(conn, "uq-1", QuestAction.YES, NOW)
	await repo.update_progress(conn, "uq-1", ActionCounts(no=1, yes=2))
	await repo.mark_flagged(conn, "uq-1", 30)
	await repo.insert_integrity_event(conn, user_quest_id="uq-1", user_id="user-1", verdict=verdict, created_at=NOW)

	append, progress, flag, event = conn.executed
	assert append[1][1:] == ("uq-1", "YES", NOW)
	assert progress[1] == ("uq-1", 1, 2, 0)
	assert "status" not in progress[0]
	assert "GREATEST" in flag[0]
	assert event[1][3:6] == (30, ["You have 3 flagged quests in the last 30 days"], ["repeat_offender"])


@pytest.mark.asyncio
async def test_completion_stats_extend_streak_and_boost_confidence(conn):
	conn.stats_row = {
		"current_streak": 4,
		"longest_streak": 4,
		"daily_confidence_meter": 50.0,
		"last_active_at": NOW - timedelta(days=1),
	}

	meter = await repository.QuestRepository().apply_completion_stats(conn, user_id="user-1", difficulty="expert", now=NOW)

	assert meter == 70.0
	query, params = conn.executed[-1]
	assert "ON CONFLICT (user_id)" in query
	assert params == ("user-1", 5, 5, 70.0, NOW)


@pytest.mark.asyncio
async def test_completion_stats_for_first_quest(conn):
	meter = await repository.QuestRepository().apply_completion_stats(conn, user_id="user-1", difficulty=None, now=NOW)

	assert meter == 10.0
	assert conn.executed[-1][1] == ("user-1", 1, 1, 10.0, NOW)


@pytest.mark.asyncio
async def test_lock_user_quest_reads_under_row_lock(conn):
	quest = await repository.QuestRepository().lock_user_quest(conn, "uq-1")

	assert quest is not None
	assert quest.counts == ActionCounts(no=3, yes=1)
	assert conn.row_queries[-1].endswith("for update of uq")


@pytest.mark.asyncio
async def test_mark_completed_only_moves_active_quests(conn):
	repo = repository.QuestRepository()

	assert await repo.mark_completed(conn, "uq-1", NOW) is True
	query, params = conn.executed[-1]
	assert "WHERE id = $1 AND status <> 'COMPLETED'" in query
	assert params == ("uq-1", NOW)

	conn.execute_result = "UPDATE 0"
	assert await repo.mark_completed(conn, "uq-1", NOW) is False
