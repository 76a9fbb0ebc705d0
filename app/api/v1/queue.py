"""
Background job queue endpoints.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core import job_queue_service
from app.core.database import get_db
from app.core.models_queue import QueueName

router = APIRouter(prefix="/queue", tags=["queue"])


@router.get("/{queue_name}/stats")
def get_queue_stats(queue_name: QueueName, db: Session = Depends(get_db)) -> Dict[str, Any]:
    """Waiting, active, completed and failed counts for one queue."""
    return {"queue": queue_name.value, **job_queue_service.get_queue_stats(db, queue_name)}


@router.get("/{queue_name}/jobs/{job_id}")
def get_job_status(
    queue_name: QueueName, job_id: int, db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """
    State of one job. Unknown jobs report status "not_found" rather than 404,
    so pollers can treat a purged job like any other terminal state.
    """
    return job_queue_service.get_job_status(db, job_id, queue_name)
