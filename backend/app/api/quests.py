"""FastAPI routes for recording quest actions and reading integrity state."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from app.domain.quests.schemas import IntegrityStatusResponse, RecordActionRequest, RecordActionResponse
from app.domain.quests.service import QuestActionService, QuestNotFound
from app.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/quests", tags=["quests"])

_service = QuestActionService()


@router.post("/{user_quest_id}/record", response_model=RecordActionResponse)
async def record_action_endpoint(
	user_quest_id: str,
	payload: RecordActionRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> RecordActionResponse:
	try:
		return await _service.record_action(user_quest_id, auth_user, payload.action)
	except QuestNotFound as exc:
		raise HTTPException(status.HTTP_404_NOT_FOUND, detail=exc.code) from exc


@router.get("/{user_quest_id}/integrity", response_model=IntegrityStatusResponse)
async def integrity_status_endpoint(
	user_quest_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> IntegrityStatusResponse:
	try:
		return await _service.integrity_status(user_quest_id, auth_user)
	except QuestNotFound as exc:
		raise HTTPException(status.HTTP_404_NOT_FOUND, detail=exc.code) from exc
