from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter(tags=["health"])


@router.get("/", response_class=PlainTextResponse, include_in_schema=False)
def root():
	return "ok"


@router.get("/health")
def health():
	return {"ok": True}
