import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .db import SessionLocal, init_db
from .data_service import DataServiceError, ensure_profile
from .navigation import NavigationError
from .settings import settings
from .routers import health
from .routers import auth
from .routers import curriculum
from .routers import library
from .routers import tutor
from .routers import portal

logging.basicConfig(
	level=settings.log_level.upper(),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="CBC Portal API")
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(curriculum.router)
app.include_router(library.router)
app.include_router(tutor.router)
app.include_router(portal.router)


@app.exception_handler(DataServiceError)
async def data_service_error_handler(request: Request, exc: DataServiceError):
	if exc.status_code >= 500:
		logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
	else:
		logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.status_code, exc.message)
	return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(NavigationError)
async def navigation_error_handler(request: Request, exc: NavigationError):
	return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


@app.get("/info")
def root():
	return {
		"status": "ok",
		"gemini_configured": bool(settings.gemini_api_key),
		"curriculum_source": settings.curriculum_source,
	}


def seed_admin() -> None:
	username = settings.seed_admin_username
	password = settings.seed_admin_password
	if not username or not password:
		return
	db = SessionLocal()
	try:
		ensure_profile(db, username, password, "admin")
	finally:
		db.close()


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	init_db()
	try:
		seed_admin()
	except DataServiceError as err:
		logger.error("Could not seed admin profile %s: %s", settings.seed_admin_username, err.message)
