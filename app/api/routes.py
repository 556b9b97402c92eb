"""
Read API over the synchronized history series, plus sync status endpoints.
One history route per series, all served by the same query builder.
"""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.database import get_db
from app.core.logging_config import get_logger
from app.db.models import SyncCheckpoint
from app.schemas.data import (
    CheckpointResponse,
    ErrorResponse,
    HistoryResponse,
    NoDataResponse,
    encode_interval,
    encode_summary,
)
from app.schemas.series import SERIES, SeriesSchema
from app.services.query_builder import query_intervals
from app.services.sync_service import run_hourly_cycle_now

logger = get_logger("api")

router = APIRouter()


def _history_endpoint(schema: SeriesSchema):
    async def get_history(
        params: schema.params_model = Depends(),
        db: AsyncSession = Depends(get_db),
    ):
        logger.info("history_request", series=schema.id, params=params.model_dump(exclude_none=True))
        try:
            page = await query_intervals(db, schema, params)
        except SQLAlchemyError as e:
            logger.error("history_query_failed", series=schema.id, error=str(e))
            return JSONResponse(
                status_code=500,
                content=ErrorResponse(error=f"Database error: {e}").model_dump(),
            )

        if not page.found:
            return NoDataResponse()

        return HistoryResponse(
            intervals=[encode_interval(schema, row) for row in page.intervals],
            meta=encode_summary(page.summary),
        )

    get_history.__name__ = f"get_{schema.id}_history"
    get_history.__doc__ = f"Paginated {schema.id} history intervals with a summary of the returned page."
    return get_history


for _schema in SERIES.values():
    _endpoint = _history_endpoint(_schema)
    for _path in _schema.routes:
        router.add_api_route(
            _path,
            _endpoint,
            methods=["GET"],
            responses={500: {"model": ErrorResponse}},
            tags=[_schema.id],
            operation_id=f"get_{_schema.id}_history{_path.replace('/', '_')}",
        )


@router.get("/stats")
async def get_stats(db: AsyncSession = Depends(get_db)):
    """
    Returns the latest sync checkpoint of every series.
    """
    result = await db.execute(select(SyncCheckpoint).order_by(SyncCheckpoint.series))
    checkpoints = result.scalars().all()

    stats = [
        CheckpointResponse(
            series=cp.series,
            status=cp.last_status,
            records_processed=cp.records_processed,
            watermark=cp.watermark,
            duration_ms=cp.run_duration_ms,
            error_log=cp.error_log,
        )
        for cp in checkpoints
    ]
    return {"sync_stats": stats}


@router.post("/sync/run")
async def run_sync_job():
    """
    Pulls the latest hour for every series right now.
    """
    results = await run_hourly_cycle_now()
    failed = [series for series, inserted in results.items() if inserted is None]
    return {"status": "failed" if failed else "completed", "inserted": results, "failed": failed}
