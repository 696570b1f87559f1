import logging

from sqlalchemy.exc import SQLAlchemyError

from parkwise import db
from parkwise.errors import NotFoundError, PersistenceError

logger = logging.getLogger(__name__)


def commit(action):
    """Commit the session, rolling back and raising PersistenceError on failure."""
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error('Commit failed while trying to %s', action, exc_info=True)
        raise PersistenceError(f'Could not {action}', action=action) from exc


def get_or_raise(model, ident, label=None):
    obj = db.session.get(model, ident)
    if obj is None:
        raise NotFoundError(f'{label or model.__name__} {ident} not found')
    return obj
