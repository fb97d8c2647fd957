import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import models  # noqa: F401  (registers tables on Base)
from .db import Base, engine, SessionLocal, ensure_schema
from .cleanup import purge_expired
from .errors import QuizError
from .settings import settings
from .routers import auth, health, tools

logging.basicConfig(
	level=getattr(logging, settings.log_level.upper(), logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="PlayLearn Quiz API")
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(tools.router)


@app.exception_handler(QuizError)
async def quiz_error_handler(request: Request, exc: QuizError):
	if exc.status_code >= 500:
		logger.error("%s on %s: %s", exc.code, request.url.path, exc.message)
	return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def _run_cleanup() -> None:
	db = SessionLocal()
	try:
		purge_expired(db)
	except Exception:
		logger.exception("Cleanup failed")
		db.rollback()
	finally:
		db.close()


async def _cleanup_watcher():
	interval = settings.cleanup_interval_seconds
	while True:
		await asyncio.sleep(interval)
		await asyncio.to_thread(_run_cleanup)


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
	# Apply lightweight dev migrations
	ensure_schema()
	await asyncio.to_thread(_run_cleanup)
	app.state.cleanup_task = None
	if settings.cleanup_interval_seconds > 0:
		app.state.cleanup_task = asyncio.create_task(_cleanup_watcher())


@app.on_event("shutdown")
async def shutdown_event():
	task = getattr(app.state, "cleanup_task", None)
	if task is not None:
		task.cancel()
