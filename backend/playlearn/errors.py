"""Error taxonomy shared by the service, the HTTP routers and the tool transport."""
from __future__ import annotations
from typing import Any, Dict, Optional


class QuizError(Exception):
	"""Base class for failures surfaced to callers as typed results."""

	code = "SERVER_ERROR"
	status_code = 500

	def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
		self.message = message
		self.details = details or {}
		super().__init__(message)

	def to_dict(self) -> Dict[str, Any]:
		return {
			"error_code": self.code,
			"message": self.message,
			"details": self.details,
		}


class NotFound(QuizError):
	"""Question, session, offer or user context does not exist."""
	code = "NOT_FOUND"
	status_code = 404


class AlreadyCompleted(QuizError):
	"""Operation against a finished placement session."""
	code = "ALREADY_COMPLETED"
	status_code = 409


class Exhausted(QuizError):
	"""No active question exists for a topic/level, even after fallback."""
	code = "EXHAUSTED"
	status_code = 404


class ValidationError(QuizError):
	"""Malformed input, rejected before any state is touched."""
	code = "VALIDATION_ERROR"
	status_code = 400


class StoreUnavailable(QuizError):
	"""The datastore failed; the whole operation may be retried by the caller."""
	code = "STORE_UNAVAILABLE"
	status_code = 503


class UnknownTool(NotFound):
	code = "UNKNOWN_TOOL"


class InvalidArguments(ValidationError):
	"""Tool arguments failed their schema."""
	code = "INVALID_ARGUMENTS"
