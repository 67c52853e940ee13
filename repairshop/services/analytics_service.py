import logging
from collections import defaultdict
from decimal import Decimal

from repairshop.models.invoice import Invoice
from repairshop.models.job import Job, JobStatus
from repairshop.services.invoice_totals import quantize_money, to_decimal
from repairshop.utils.timezone_utils import local_today, month_key, last_month_keys

logger = logging.getLogger(__name__)

REPORT_MONTHS = 6


class ServiceError(Exception):
    def __init__(self, message):
        super().__init__(message)
        self.message = message


class AnalyticsService:
    @staticmethod
    def summary(today=None):
        """
        Dashboard figures over active jobs and their invoices.

        Monthly buckets cover the last six months ending with the current
        month, keyed like 'Mar 25', zero-filled and oldest first.
        """
        try:
            jobs = Job.query_active().all()
            invoices = Invoice.query.join(Job).filter(Job.is_deleted.is_(False)).all()
        except Exception as e:
            logger.error(f"Error loading analytics data: {e}", exc_info=True)
            raise ServiceError("Could not build analytics. Please try again later.")

        today = today or local_today()
        months = last_month_keys(today, REPORT_MONTHS)

        total_jobs = len(jobs)
        finished_jobs = sum(1 for job in jobs if job.status == JobStatus.FINISHED.value)
        completion_rate = round(finished_jobs / total_jobs * 100, 2) if total_jobs else 0.0

        total_revenue = sum((to_decimal(invoice.total) for invoice in invoices), Decimal("0"))
        average_job_value = total_revenue / total_jobs if total_jobs else Decimal("0")

        revenue_by_job = defaultdict(Decimal)
        for invoice in invoices:
            revenue_by_job[invoice.job_id] += to_decimal(invoice.total)

        revenue_by_status = defaultdict(Decimal)
        for job in jobs:
            revenue_by_status[job.status] += revenue_by_job.get(job.id, Decimal("0"))

        job_count_by_month = {month: 0 for month in months}
        for job in jobs:
            if job.created_at:
                key = month_key(job.created_at)
                if key in job_count_by_month:
                    job_count_by_month[key] += 1

        revenue_by_month = {month: Decimal("0") for month in months}
        for invoice in invoices:
            if invoice.created_at:
                key = month_key(invoice.created_at)
                if key in revenue_by_month:
                    revenue_by_month[key] += to_decimal(invoice.total)

        unpaid = [invoice for invoice in invoices if invoice.is_unpaid]

        return {
            'total_jobs': total_jobs,
            'completion_rate': completion_rate,
            'total_revenue': str(quantize_money(total_revenue)),
            'average_job_value': str(quantize_money(average_job_value)),
            'revenue_by_status': {
                status: str(quantize_money(amount)) for status, amount in revenue_by_status.items()
            },
            'job_count_by_month': job_count_by_month,
            'revenue_by_month': {
                month: str(quantize_money(amount)) for month, amount in revenue_by_month.items()
            },
            'unpaid_invoices': len(unpaid),
            'unpaid_amount': str(quantize_money(sum((to_decimal(i.total) for i in unpaid), Decimal("0")))),
        }
