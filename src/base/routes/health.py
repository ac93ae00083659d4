import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

router = APIRouter(tags=["Health"], prefix="")
logger = logging.getLogger(__name__)


@router.get("/health")
async def health(request: Request):
    """
    Health check endpoint.
    Returns 200 OK if the service is up, including database connectivity status.
    """
    result = {"status": "Healthy", "message": "Service is up and running."}

    session_factory = getattr(request.app.state, "db_session_factory", None)
    if session_factory is None:
        result["database"] = "not configured"
    else:
        try:
            async with session_factory() as session:
                await session.execute(text("SELECT 1"))
            result["database"] = "connected"
        except SQLAlchemyError:
            logger.exception("Database health check failed")
            result["database"] = "unavailable"
            result["status"] = "Degraded"

    return JSONResponse(status_code=200, content=result)
