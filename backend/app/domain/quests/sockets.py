"""Socket.IO namespace pushing quest integrity notices to their owner."""

from __future__ import annotations

from typing import Dict, Optional

import socketio
from fastapi import HTTPException

from app.infra.auth import verify_access_jwt
from app.settings import settings

_namespace: "QuestsNamespace" | None = None


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


class QuestsNamespace(socketio.AsyncNamespace):
	def __init__(self) -> None:
		super().__init__("/quests")
		self._users: Dict[str, str] = {}

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		try:
			user_id = self._get_user_id(environ, auth)
		except (ValueError, HTTPException):
			raise ConnectionRefusedError("unauthorized") from None
		self._users[sid] = user_id
		await self.enter_room(sid, self.user_room(user_id))

	async def on_disconnect(self, sid: str) -> None:
		user_id = self._users.pop(sid, None)
		if user_id:
			await self.leave_room(sid, self.user_room(user_id))

	def _get_user_id(self, environ: dict, auth: Optional[dict]) -> str:
		scope = environ.get("asgi.scope", environ)
		payload = auth or environ.get("auth") or scope.get("auth") or {}
		token = payload.get("token")
		if not token:
			auth_header = _header(scope, "authorization")
			if auth_header and auth_header.lower().startswith("bearer "):
				token = auth_header.split(" ", 1)[1]
		if token:
			return verify_access_jwt(str(token)).id
		# Raw ids are only trusted from local tools.
		if settings.is_dev():
			user_id = payload.get("userId") or payload.get("user_id")
			if user_id:
				return str(user_id)
		raise ValueError("missing_token")

	@staticmethod
	def user_room(user_id: str) -> str:
		return f"user:{user_id}"


def set_namespace(namespace: Optional[QuestsNamespace]) -> None:
	global _namespace
	_namespace = namespace


async def emit_integrity_notice(user_id: str, user_quest_id: str, message: str) -> None:
	if _namespace is None:
		return
	payload = {"user_quest_id": user_quest_id, "message": message}
	await _namespace.emit("quest:integrity", payload, room=QuestsNamespace.user_room(str(user_id)))
