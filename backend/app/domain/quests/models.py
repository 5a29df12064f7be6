"""Domain models for quests, quest action logs and integrity verdicts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional


class QuestAction(str, Enum):
	"""Kinds of action a user records against a quest."""

	NO = "NO"
	YES = "YES"
	ACTION = "ACTION"


class GoalType(str, Enum):
	"""Which action kind counts towards a quest's goal."""

	COLLECT_NOS = "COLLECT_NOS"
	COLLECT_YES = "COLLECT_YES"
	TAKE_ACTION = "TAKE_ACTION"


STATUS_ACTIVE = "ACTIVE"
STATUS_COMPLETED = "COMPLETED"


@dataclass(slots=True)
class WorkUnit:
	"""The slice of a user quest the integrity scorer reads."""

	id: str
	user_id: str
	started_at: Optional[datetime]
	goal_count: int


@dataclass(slots=True)
class ActionEvent:
	"""One append-only quest action log entry."""

	id: str
	user_quest_id: str
	recorded_at: datetime
	action: Optional[str] = None

	@classmethod
	def from_record(cls, record: Mapping[str, Any]) -> "ActionEvent":
		return cls(
			id=str(record["id"]),
			user_quest_id=str(record["user_quest_id"]),
			recorded_at=record["recorded_at"],
			action=record.get("action"),
		)


@dataclass(slots=True)
class ActionCounts:
	no: int = 0
	yes: int = 0
	action: int = 0

	@property
	def total(self) -> int:
		return self.no + self.yes + self.action


@dataclass(slots=True)
class UserQuest:
	"""A user's attempt at a quest, joined with the quest's goal definition."""

	id: str
	user_id: str
	quest_id: str
	title: str
	goal_type: GoalType
	goal_count: int
	difficulty: Optional[str]
	status: str
	counts: ActionCounts
	started_at: Optional[datetime] = None
	completed_at: Optional[datetime] = None
	is_flagged_as_suspicious: bool = False
	suspicious_score: float = 0.0

	@classmethod
	def from_record(cls, record: Mapping[str, Any]) -> "UserQuest":
		return cls(
			id=str(record["id"]),
			user_id=str(record["user_id"]),
			quest_id=str(record["quest_id"]),
			title=record.get("title") or "",
			goal_type=GoalType(record["goal_type"]),
			goal_count=int(record["goal_count"]),
			difficulty=record.get("difficulty"),
			status=record.get("status") or STATUS_ACTIVE,
			counts=ActionCounts(
				no=int(record.get("no_count") or 0),
				yes=int(record.get("yes_count") or 0),
				action=int(record.get("action_count") or 0),
			),
			started_at=record.get("started_at"),
			completed_at=record.get("completed_at"),
			is_flagged_as_suspicious=bool(record.get("is_flagged_as_suspicious")),
			suspicious_score=float(record.get("suspicious_score") or 0.0),
		)

	def to_work_unit(self) -> WorkUnit:
		return WorkUnit(id=self.id, user_id=self.user_id, started_at=self.started_at, goal_count=self.goal_count)


@dataclass(slots=True)
class IntegrityInputs:
	"""Everything the scorer needs, read once before scoring."""

	work_unit: WorkUnit
	recent_action_count: int
	recent_actions: list[ActionEvent]
	flagged_quest_count: int


@dataclass(slots=True)
class IntegrityVerdict:
	"""Outcome of a quest integrity evaluation. Never blocks the action."""

	is_suspicious: bool = False
	suspicious_score: float = 0.0
	reasons: list[str] = field(default_factory=list)
	should_flag: bool = False
	motivational_message: Optional[str] = None
	signals: list[str] = field(default_factory=list)

	@classmethod
	def inert(cls) -> "IntegrityVerdict":
		return cls()

	def fire(self, signal: str, reason: str, contribution: float, message: str) -> None:
		"""Record a detection rule that fired."""

		self.suspicious_score += contribution
		self.reasons.append(reason)
		self.signals.append(signal)
		self.is_suspicious = True
		self.should_flag = True
		if self.motivational_message is None:
			self.motivational_message = message


@dataclass(slots=True)
class IntegrityEvent:
	"""Audit row written whenever a recorded action is flagged."""

	id: str
	user_quest_id: str
	score: float
	reasons: list[str]
	signals: list[str]
	created_at: datetime

	@classmethod
	def from_record(cls, record: Mapping[str, Any]) -> "IntegrityEvent":
		return cls(
			id=str(record["id"]),
			user_quest_id=str(record["user_quest_id"]),
			score=float(record["score"]),
			reasons=list(record.get("reasons") or []),
			signals=list(record.get("signals") or []),
			created_at=record["created_at"],
		)
