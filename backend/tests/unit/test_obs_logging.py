import json
import logging

from app.obs import logging as obs_logging


def _record(**extra) -> logging.LogRecord:
	record = logging.LogRecord("app.domain.quests.integrity", logging.WARNING, __file__, 10, "quest_integrity_failed", None, None)
	for key, value in extra.items():
		setattr(record, key, value)
	return record


def test_formatter_includes_bound_context_and_extras():
	tokens = obs_logging.bind_context(request_id="req-9", user_quest_id="uq-1")
	try:
		line = obs_logging.JSONLogFormatter().format(_record(score=62.5))
	finally:
		obs_logging.reset_context(tokens)

	payload = json.loads(line)
	assert payload["msg"] == "quest_integrity_failed"
	assert payload["level"] == "warning"
	assert payload["request_id"] == "req-9"
	assert payload["user_quest_id"] == "uq-1"
	assert payload["score"] == 62.5
	assert obs_logging.get_request_id() == "unknown"


def test_formatter_redacts_sensitive_extras_and_truncates():
	payload = json.loads(obs_logging.JSONLogFormatter().format(_record(access_token="abc", note="x" * 400)))

	assert payload["access_token"] == "[redacted]"
	assert len(payload["note"]) == 257
