"""Pydantic schemas for the quest action & integrity APIs."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from app.domain.quests.models import IntegrityEvent, IntegrityVerdict, QuestAction


class RecordActionRequest(BaseModel):
	action: QuestAction


class IntegritySchema(BaseModel):
	flagged: bool = False
	score: float = Field(default=0.0, ge=0, le=100)
	reasons: list[str] = Field(default_factory=list)
	message: Optional[str] = None

	@classmethod
	def from_verdict(cls, verdict: IntegrityVerdict) -> "IntegritySchema":
		return cls(
			flagged=verdict.should_flag,
			score=verdict.suspicious_score,
			reasons=list(verdict.reasons),
			message=verdict.motivational_message,
		)


class RecordActionResponse(BaseModel):
	success: bool = True
	completed: bool
	no_count: int
	yes_count: int
	action_count: int
	integrity: IntegritySchema


class IntegrityEventSchema(BaseModel):
	id: str
	score: float
	reasons: list[str]
	signals: list[str]
	created_at: datetime

	@classmethod
	def from_event(cls, event: IntegrityEvent) -> "IntegrityEventSchema":
		return cls(
			id=event.id,
			score=event.score,
			reasons=event.reasons,
			signals=event.signals,
			created_at=event.created_at,
		)


class IntegrityStatusResponse(BaseModel):
	user_quest_id: str
	flagged: bool
	score: float
	events: list[IntegrityEventSchema] = Field(default_factory=list)
