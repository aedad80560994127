from __future__ import annotations

from .logstore import LogStore
from .model import Pipeline
from .registry import Registry


def build_pipeline(registry: Registry, store: LogStore, job_id: str) -> Pipeline:
    """
    Bind a job's steps to a freshly created log record.

    The job lookup happens first, so an unknown id raises UnknownIdError
    without creating a record. Nothing is executed here.
    """
    job = registry.job(job_id)
    record = store.create(job.id)
    return Pipeline(job_id=job.id, log_id=record.id, steps=job.pipeline)
