from fastapi import APIRouter, Depends, HTTPException, status
from redis import Redis
from rq import Queue

from estate_scraper.core.config import get_settings
from estate_scraper.schemas.listing import RunAccepted, RunStatus
from estate_scraper.schemas.run import RunConfig
from estate_scraper.workers import jobs

router = APIRouter(prefix="/v1", tags=["runs"])


def get_queue() -> Queue:
    settings = get_settings()
    return Queue(jobs.QUEUE_NAME, connection=Redis.from_url(settings.redis_url))


@router.post("/runs", response_model=RunAccepted, status_code=status.HTTP_202_ACCEPTED)
def create_run(config: RunConfig, queue: Queue = Depends(get_queue)) -> RunAccepted:
    job = jobs.enqueue_scrape(config, queue=queue)
    return RunAccepted(enqueued=True, job_id=job.id)


@router.get("/runs/{job_id}", response_model=RunStatus)
def get_run(job_id: str, queue: Queue = Depends(get_queue)) -> RunStatus:
    job = queue.fetch_job(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Run not found")
    job_status = str(getattr(job.get_status(), "value", job.get_status()))
    result = job.return_value() if job_status == "finished" else None
    return RunStatus(job_id=job.id, status=job_status, result=result)
