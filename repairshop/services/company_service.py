import logging
from repairshop.extensions import db
from repairshop.models.company import Company

logger = logging.getLogger(__name__)

COMPANY_FIELDS = ('name', 'address', 'phone', 'email', 'logo_url')


class ServiceError(Exception):
    def __init__(self, message):
        super().__init__(message)
        self.message = message


class CompanyService:
    @staticmethod
    def get():
        try:
            return Company.query.order_by(Company.id).first()
        except Exception as e:
            logger.error(f"Error fetching company: {e}", exc_info=True)
            raise ServiceError("Could not fetch company profile. Please try again later.")

    @staticmethod
    def upsert(data):
        """Create the shop profile or update the existing one."""
        try:
            company = Company.query.order_by(Company.id).first()
            if company is None:
                company = Company()
                db.session.add(company)
            for key in COMPANY_FIELDS:
                if key in data:
                    setattr(company, key, data[key])
            db.session.commit()
            return company
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error saving company: {e}", exc_info=True)
            raise ServiceError("Could not save company profile. Please try again later.")
