import logging
from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from repairshop.extensions import db
from repairshop.models.job import Job, JobStatus
from repairshop.services.job_card_number import (
    JobCardNumberAllocator,
    JobCardAllocationError,
    JobCardLookupError,
    SQLAlchemyJobCardStore,
)
from repairshop.utils.validation import sanitize_filter_value, escape_like

logger = logging.getLogger(__name__)

# Insert attempts when the unique constraint rejects a job card number
MAX_INSERT_RETRIES = 5

EDITABLE_FIELDS = (
    'customer_name', 'customer_phone', 'customer_email',
    'device_name', 'device_model', 'device_condition',
    'problem', 'status', 'handling_fees',
)


class ServiceError(Exception):
    def __init__(self, message):
        super().__init__(message)
        self.message = message


def is_job_card_conflict(error: IntegrityError) -> bool:
    """True when an insert failed on the job card number unique constraint."""
    message = str(getattr(error, 'orig', None) or error)
    return 'job_card_number' in message or 'uq_job_job_card_number' in message


class JobService:
    @staticmethod
    def default_allocator():
        return JobCardNumberAllocator(
            SQLAlchemyJobCardStore(db.session),
            max_attempts=current_app.config.get('JOB_CARD_MAX_ATTEMPTS', 5),
        )

    @staticmethod
    def get_all(status=None, search=None):
        try:
            query = Job.query_active()
            if status:
                query = query.filter(Job.status == status)
            if search and search.strip():
                term = sanitize_filter_value(search)
                if not term:
                    # a rejected term matches nothing; it must not widen the result
                    return []
                pattern = f"%{escape_like(term)}%"
                query = query.filter(or_(
                    Job.job_card_number.ilike(pattern, escape='\\'),
                    Job.customer_name.ilike(pattern, escape='\\'),
                    Job.customer_phone.ilike(pattern, escape='\\'),
                    Job.device_name.ilike(pattern, escape='\\'),
                ))
            return query.order_by(Job.created_at.desc(), Job.id.desc()).all()
        except Exception as e:
            logger.error(f"Error fetching jobs: {e}", exc_info=True)
            raise ServiceError("Could not fetch jobs. Please try again later.")

    @staticmethod
    def get_by_id(job_id):
        try:
            return Job.query_active().filter_by(id=job_id).first()
        except Exception as e:
            logger.error(f"Error fetching job: {e}", exc_info=True)
            raise ServiceError("Could not fetch job. Please try again later.")

    @staticmethod
    def get_by_card_number(job_card_number):
        try:
            return Job.query_active().filter_by(job_card_number=job_card_number).first()
        except Exception as e:
            logger.error(f"Error fetching job by card number: {e}", exc_info=True)
            raise ServiceError("Could not fetch job. Please try again later.")

    @staticmethod
    def create(data, allocator=None):
        """
        Create a job with a freshly allocated job card number.

        The allocator's pre-check can race with a concurrent insert, so a
        unique-constraint violation on the number is retried with a new number.
        Any other insert failure is fatal for this request.

        Raises:
            JobCardLookupError: the uniqueness pre-check could not be completed
            JobCardAllocationError: no free number could be found
            ServiceError: any other failure
        """
        allocator = allocator or JobService.default_allocator()
        fields = {key: data[key] for key in EDITABLE_FIELDS if key in data}
        fields.setdefault('status', JobStatus.IN_PROGRESS.value)
        rejected = set()

        for attempt in range(1, MAX_INSERT_RETRIES + 1):
            try:
                number = allocator.allocate(
                    fields.get('customer_name', ''),
                    fields.get('customer_phone', ''),
                    exclude=rejected,
                )
            except (JobCardLookupError, JobCardAllocationError):
                db.session.rollback()
                raise

            job = Job(job_card_number=number, **fields)
            try:
                db.session.add(job)
                db.session.commit()
                logger.info(f"Created job {job.id} with job card number {number}")
                return job
            except IntegrityError as e:
                db.session.rollback()
                if not is_job_card_conflict(e):
                    logger.error(f"Error creating job: {e}", exc_info=True)
                    raise ServiceError("Could not create job. Please try again later.")
                rejected.add(number)
                logger.warning(f"Job card number {number} taken at insert (attempt {attempt}), retrying")
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error(f"Error creating job: {e}", exc_info=True)
                raise ServiceError("Could not create job. Please try again later.")

        logger.error(f"Gave up creating job after {MAX_INSERT_RETRIES} unique constraint conflicts")
        raise JobCardAllocationError(attempts=MAX_INSERT_RETRIES)

    @staticmethod
    def update(job_id, data):
        """Partial update. The job card number is never changed."""
        try:
            job = Job.query_active().filter_by(id=job_id).first()
            if not job:
                return None
            for key in EDITABLE_FIELDS:
                if key in data:
                    setattr(job, key, data[key])
            db.session.commit()
            return job
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error updating job: {e}", exc_info=True)
            raise ServiceError("Could not update job. Please try again later.")

    @staticmethod
    def update_status(job_id, status):
        if status not in JobStatus.values():
            raise ServiceError(f"Invalid status '{status}'. Allowed: {', '.join(JobStatus.values())}")
        try:
            job = Job.query_active().filter_by(id=job_id).first()
            if not job:
                return None
            old_status = job.status
            job.status = status
            db.session.commit()
            logger.info(f"Job {job.job_card_number} status {old_status} -> {status}")
            return job
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error updating job status: {e}", exc_info=True)
            raise ServiceError("Could not update job status. Please try again later.")

    @staticmethod
    def delete(job_id):
        try:
            job = Job.query_active().filter_by(id=job_id).first()
            if not job:
                return False
            job.is_deleted = True
            db.session.commit()
            return True
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error deleting job: {e}", exc_info=True)
            raise ServiceError("Could not delete job. Please try again later.")
