"""Jobs repository: durable CRUD over job records."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from system_agent.database import SessionLocal
from system_agent.job_status import SEPARATOR, JobStatus
from system_agent.models.job import Job

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def _base_status_filter(base_status: str):
    """Match a base status with or without a reason suffix."""
    return or_(Job.status == base_status, Job.status.like(f"{base_status}{SEPARATOR}%"))


class Jobs:
    """
    Repository for the jobs table.

    Every method opens its own session so one instance can be shared by the
    runner threads. Database errors are logged and turned into falsy return
    values; callers never see SQLAlchemy exceptions.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        """Initialize the repository."""
        self.session_factory = session_factory or SessionLocal

    def _log_db_error(self, context: str, error: Exception, **extra: Any) -> None:
        logger.error(f"DB error: {context}: {error}", extra=extra)

    @staticmethod
    def _to_dict(job: Job) -> Dict[str, Any]:
        engine_data = job.engine_data if isinstance(job.engine_data, dict) else {}
        return {
            "job_id": job.job_id,
            "pipeline_id": job.pipeline_id,
            "flow_id": job.flow_id,
            "source": job.source,
            "label": job.label,
            "status": job.status,
            "engine_data": dict(engine_data),
            "created_at": job.created_at,
            "started_at": job.started_at,
            "completed_at": job.completed_at,
        }

    def create_job(self, fields: Dict[str, Any]) -> Optional[int]:
        """
        Insert a new job in the pending state.

        Args:
            fields: Origin fields (pipeline_id, flow_id, source, label)

        Returns:
            New job id, or None when the insert failed
        """
        db = self.session_factory()
        try:
            job = Job(
                pipeline_id=str(fields["pipeline_id"]),
                flow_id=str(fields["flow_id"]),
                source=fields.get("source", "pipeline"),
                label=fields.get("label"),
                status=JobStatus.PENDING,
                engine_data={},
            )
            db.add(job)
            db.commit()
            return job.job_id
        except (KeyError, SQLAlchemyError) as e:
            db.rollback()
            self._log_db_error("create_job", e, fields=fields)
            return None
        finally:
            db.close()

    def store_engine_data(self, job_id: int, data: Dict[str, Any]) -> bool:
        """Merge data into the job's engine_data bag (new keys win)."""
        db = self.session_factory()
        try:
            job = db.get(Job, job_id)
            if not job:
                logger.warning(f"store_engine_data: job {job_id} not found", extra={"job_id": job_id})
                return False

            merged = dict(job.engine_data) if isinstance(job.engine_data, dict) else {}
            merged.update(data)
            # Reassign so the JSON column is flagged dirty
            job.engine_data = merged
            db.commit()
            return True
        except SQLAlchemyError as e:
            db.rollback()
            self._log_db_error("store_engine_data", e, job_id=job_id)
            return False
        finally:
            db.close()

    def start_job(self, job_id: int, status: Union[str, JobStatus] = JobStatus.PROCESSING) -> bool:
        """Move the job to an active status and record the attempt start."""
        db = self.session_factory()
        try:
            job = db.get(Job, job_id)
            if not job:
                return False
            job.status = str(status)
            job.started_at = datetime.utcnow()
            db.commit()
            return True
        except SQLAlchemyError as e:
            db.rollback()
            self._log_db_error("start_job", e, job_id=job_id)
            return False
        finally:
            db.close()

    def get_job(self, job_id: int) -> Optional[Dict[str, Any]]:
        """Load a job as a plain dict, or None if it does not exist."""
        db = self.session_factory()
        try:
            job = db.get(Job, job_id)
            return self._to_dict(job) if job else None
        except SQLAlchemyError as e:
            self._log_db_error("get_job", e, job_id=job_id)
            return None
        finally:
            db.close()

    def update_job_status(self, job_id: int, status: Union[str, JobStatus]) -> bool:
        """Write a non-terminal status (e.g. waiting, processing)."""
        db = self.session_factory()
        try:
            job = db.get(Job, job_id)
            if not job:
                return False
            job.status = str(status)
            db.commit()
            return True
        except SQLAlchemyError as e:
            db.rollback()
            self._log_db_error("update_job_status", e, job_id=job_id)
            return False
        finally:
            db.close()

    def complete_job(
        self,
        job_id: int,
        status: Union[str, JobStatus],
        only_if_not_final: bool = False,
    ) -> bool:
        """
        Write a final status.

        Last write wins unless only_if_not_final is set, in which case a job
        that already holds a final status is left untouched.

        Args:
            job_id: Job to finalize
            status: Final status (JobStatus or serialized string)
            only_if_not_final: Skip the write if the job is already final

        Returns:
            True if the status was written
        """
        db = self.session_factory()
        try:
            query = db.query(Job).filter(Job.job_id == job_id)
            if only_if_not_final:
                query = query.with_for_update()
            job = query.first()
            if not job:
                logger.warning(f"complete_job: job {job_id} not found", extra={"job_id": job_id})
                return False

            if only_if_not_final and JobStatus.is_status_final(job.status):
                logger.info(
                    f"Job {job_id} already final ({job.status}), not overwriting with {status}",
                    extra={"job_id": job_id},
                )
                db.rollback()
                return False

            job.status = str(status)
            job.completed_at = datetime.utcnow()
            db.commit()
            return True
        except SQLAlchemyError as e:
            db.rollback()
            self._log_db_error("complete_job", e, job_id=job_id)
            return False
        finally:
            db.close()

    def get_jobs(
        self,
        flow_id: Optional[str] = None,
        pipeline_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """List jobs newest first, filtered by flow, pipeline or base status."""
        limit = max(1, min(int(limit), MAX_PAGE_SIZE))
        offset = max(0, int(offset))

        db = self.session_factory()
        try:
            query = db.query(Job)
            if flow_id is not None:
                query = query.filter(Job.flow_id == str(flow_id))
            if pipeline_id is not None:
                query = query.filter(Job.pipeline_id == str(pipeline_id))
            if status:
                query = query.filter(_base_status_filter(status))
            jobs = query.order_by(Job.job_id.desc()).offset(offset).limit(limit).all()
            return [self._to_dict(j) for j in jobs]
        except SQLAlchemyError as e:
            self._log_db_error("get_jobs", e)
            return []
        finally:
            db.close()

    def get_jobs_summary(self) -> Dict[str, int]:
        """Count jobs per base status, reasons collapsed."""
        db = self.session_factory()
        try:
            rows = db.query(Job.status, func.count(Job.job_id)).group_by(Job.status).all()
        except SQLAlchemyError as e:
            self._log_db_error("get_jobs_summary", e)
            return {}
        finally:
            db.close()

        summary: Dict[str, int] = {}
        for raw_status, count in rows:
            base = JobStatus.parse_base_status(raw_status)
            summary[base] = summary.get(base, 0) + count

        return dict(sorted(summary.items(), key=lambda item: item[1], reverse=True))

    def delete_jobs(self, failed_only: bool = False) -> Optional[int]:
        """Delete all jobs, or only failed ones. Returns the count or None on error."""
        db = self.session_factory()
        try:
            query = db.query(Job)
            if failed_only:
                query = query.filter(_base_status_filter(JobStatus.FAILED))
            deleted = query.delete(synchronize_session=False)
            db.commit()
            return deleted
        except SQLAlchemyError as e:
            db.rollback()
            self._log_db_error("delete_jobs", e, failed_only=failed_only)
            return None
        finally:
            db.close()

    def find_stuck_jobs(self, flow_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Processing jobs whose engine_data carries a job_status override."""
        db = self.session_factory()
        try:
            query = db.query(Job).filter(Job.status == JobStatus.PROCESSING)
            if flow_id is not None:
                query = query.filter(Job.flow_id == str(flow_id))
            jobs = query.order_by(Job.job_id).all()
            # JSON extraction differs per dialect; filter in Python
            return [
                self._to_dict(j)
                for j in jobs
                if isinstance(j.engine_data, dict) and "job_status" in j.engine_data
            ]
        except SQLAlchemyError as e:
            self._log_db_error("find_stuck_jobs", e)
            return []
        finally:
            db.close()
