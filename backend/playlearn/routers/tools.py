from __future__ import annotations
import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import InvalidArguments, QuizError, UnknownTool
from ..tools import call_tool, list_tools
from .auth import get_caller_id

router = APIRouter(tags=["tools"])

logger = logging.getLogger(__name__)

JSONRPC_METHOD_NOT_FOUND = -32601
JSONRPC_INVALID_PARAMS = -32602
JSONRPC_INTERNAL_ERROR = -32000


@router.get("/tools")
def get_tools():
	return {"tools": list_tools()}


@router.post("/tools/{name}")
def post_tool(
	name: str,
	arguments: Optional[Dict[str, Any]] = Body(default=None),
	caller_id: Optional[str] = Depends(get_caller_id),
	db: Session = Depends(get_db),
):
	# QuizError is rendered by the app-level handler
	return call_tool(db, name, arguments, user_id=caller_id)


def _tool_result(payload: Dict[str, Any], is_error: bool = False) -> Dict[str, Any]:
	return {
		"content": [{"type": "text", "text": json.dumps(payload, ensure_ascii=False, default=str)}],
		"structuredContent": payload,
		"isError": is_error,
	}


def _rpc_error(req_id: Any, code: int, message: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
	error: Dict[str, Any] = {"code": code, "message": message}
	if data:
		error["data"] = data
	return {"jsonrpc": "2.0", "error": error, "id": req_id}


@router.post("/rpc")
def rpc(
	message: Dict[str, Any] = Body(...),
	caller_id: Optional[str] = Depends(get_caller_id),
	db: Session = Depends(get_db),
):
	req_id = message.get("id")
	method = message.get("method")
	params = message.get("params") or {}
	if method == "tools/list":
		return {"jsonrpc": "2.0", "result": {"tools": list_tools()}, "id": req_id}
	if method != "tools/call":
		return _rpc_error(req_id, JSONRPC_METHOD_NOT_FOUND, f"Method not found: {method}")
	if not isinstance(params, dict) or not isinstance(params.get("name"), str):
		return _rpc_error(req_id, JSONRPC_INVALID_PARAMS, "params.name is required")

	name = params["name"]
	try:
		payload = call_tool(db, name, params.get("arguments") or {}, user_id=caller_id)
	except UnknownTool as exc:
		return _rpc_error(req_id, JSONRPC_METHOD_NOT_FOUND, exc.message, exc.to_dict())
	except InvalidArguments as exc:
		return _rpc_error(req_id, JSONRPC_INVALID_PARAMS, exc.message, exc.to_dict())
	except QuizError as exc:
		return {"jsonrpc": "2.0", "result": _tool_result(exc.to_dict(), is_error=True), "id": req_id}
	except Exception:
		logger.exception("Tool %s failed", name)
		return _rpc_error(req_id, JSONRPC_INTERNAL_ERROR, "Internal Server Error")
	return {"jsonrpc": "2.0", "result": _tool_result(payload), "id": req_id}
