from repairshop.extensions import db
from sqlalchemy import false
from enum import Enum

class JobStatus(Enum):
    IN_PROGRESS = "In Progress"
    FINISHED = "Finished"
    WAITING_FOR_PARTS = "Waiting for Parts"

    @classmethod
    def values(cls):
        return [status.value for status in cls]

class Job(db.Model):
    __tablename__ = 'job'
    __table_args__ = (
        db.UniqueConstraint('job_card_number', name='uq_job_job_card_number'),
    )

    id = db.Column(db.Integer, primary_key=True)
    # Assigned once at creation, never regenerated
    job_card_number = db.Column(db.String(64), nullable=False)

    customer_name = db.Column(db.String(128), nullable=False, index=True)
    customer_phone = db.Column(db.String(32), nullable=False)
    customer_email = db.Column(db.String(128), nullable=True)

    device_name = db.Column(db.String(128), nullable=False)
    device_model = db.Column(db.String(128), nullable=False)
    device_condition = db.Column(db.Text, nullable=False)

    problem = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(32), nullable=False, default=JobStatus.IN_PROGRESS.value, index=True)
    handling_fees = db.Column(db.Numeric(precision=12, scale=2), nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=db.func.current_timestamp())
    updated_at = db.Column(db.DateTime, default=db.func.current_timestamp(), onupdate=db.func.current_timestamp())
    is_deleted = db.Column(db.Boolean, default=False, nullable=False, server_default=false())

    invoices = db.relationship('Invoice', back_populates='job', lazy='select', cascade='all, delete-orphan')

    @classmethod
    def query_active(cls):
        """Query active (non-deleted) records only"""
        return cls.query.filter_by(is_deleted=False)

    def __repr__(self):
        return f"<Job {self.job_card_number}>"
