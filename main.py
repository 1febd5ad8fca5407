import logging
import os
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pymongo.errors import PyMongoError

import database
import settings
from auth import router as auth_router
from errors import unhandled_exception_handler
from notifications import router as notifications_router
from projects import router as projects_router
from routes_logs import router as logs_router, uploads_router
from scheduler import init_scheduler, shutdown_scheduler
from users import router as users_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Daily Work Log API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_exception_handler(Exception, unhandled_exception_handler)

# serve uploads when files are kept on local disk
if not settings.S3_BUCKET:
    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")

for router in (auth_router, logs_router, uploads_router, projects_router, users_router, notifications_router):
    app.include_router(router, prefix="/api")


@app.on_event("startup")
def startup():
    if database.db is None:
        database.connect()
    database.ensure_indexes()
    if settings.ENABLE_SCHEDULER:
        init_scheduler()


@app.on_event("shutdown")
def shutdown():
    shutdown_scheduler()
    database.close()


@app.get("/")
def read_root():
    return {"message": "Daily Work Log API"}


@app.get("/api/health")
def healthcheck():
    response = {"status": "ok", "time": datetime.now(timezone.utc).isoformat(), "database": "not connected"}
    if database.db is not None:
        try:
            database.db.command("ping")
            response["database"] = "connected"
        except PyMongoError as e:
            logger.warning("Database ping failed: %s", e)
            response["status"] = "degraded"
            response["database"] = "unreachable"
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
