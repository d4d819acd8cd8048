import logging

from sqlalchemy.orm import Session

from classbook.models import Organization
from classbook.services.settings_service import initialize_default_settings


logger = logging.getLogger(__name__)


def run_bootstrap(db: Session) -> dict:
    """Make sure every organization has a full set of stored settings."""
    organizations = db.query(Organization).order_by(Organization.id.asc()).all()
    created = 0
    for organization in organizations:
        created += initialize_default_settings(db, organization.id)
    if created:
        logger.info('bootstrap_settings_initialized organizations=%s settings_created=%s', len(organizations), created)
    return {'ran': bool(created), 'organizations': len(organizations), 'settings_created': created}
