import time
from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db
from app.db.init_db import init_db
from app.db.models import SyncCheckpoint
from app.services.sync_service import start_sync_jobs
from app.api.routes import router as api_router

from prometheus_fastapi_instrumentator import Instrumentator
from app.core.logging_config import setup_logging, get_logger

# Setup Structured Logging
setup_logging()
logger = get_logger("main")

app = FastAPI(title=get_settings().PROJECT_NAME)
app.state.sync_runtime = None

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# Instrument Prometheus
Instrumentator().instrument(app).expose(app)

@app.on_event("startup")
async def startup_event():
    try:
        await init_db()
    except Exception as e:
        logger.error("db_init_failed", error=str(e))
        raise
    logger.info("startup_event", msg="Database ready, starting sync jobs")
    app.state.sync_runtime = await start_sync_jobs()

@app.on_event("shutdown")
async def shutdown_event():
    runtime = app.state.sync_runtime
    if runtime is not None:
        await runtime.stop()
        logger.info("sync_jobs_stopped")

@app.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    start_time = time.time()
    db_status = "unhealthy"
    sync_status = "unknown"
    last_watermark = None

    try:
        await db.execute(select(1))
        db_status = "connected"

        result = await db.execute(select(SyncCheckpoint))
        checkpoints = result.scalars().all()

        if not checkpoints:
            sync_status = "no_runs_yet"
        else:
            failures = [cp for cp in checkpoints if cp.last_status != "success"]
            sync_status = "failure" if failures else "success"

            watermarks = [cp.watermark for cp in checkpoints if cp.watermark]
            if watermarks:
                last_watermark = max(watermarks).isoformat()

    except Exception as e:
        db_status = f"error: {str(e)}"

    latency = (time.time() - start_time) * 1000

    return {
        "status": "ok",
        "db_connectivity": db_status,
        "sync_status": sync_status,
        "last_watermark": last_watermark,
        "latency_ms": round(latency, 2)
    }

app.include_router(api_router)
