import logging
import random

from parkwise import db, feed
from parkwise.errors import ValidationError
from parkwise.models import (TICKET_CATEGORIES, TICKET_PRIORITIES, TICKET_STATUSES, Staff,
                             SupportTicket, utcnow)
from parkwise.services import commit

logger = logging.getLogger(__name__)


def _random_attendant():
    attendants = Staff.query.filter_by(role='Attendant').all()
    return random.choice(attendants) if attendants else None


def open_ticket(user, subject, description, category='query', priority='medium'):
    subject = (subject or '').strip()
    description = (description or '').strip()
    if not subject or not description:
        raise ValidationError('Please fill in all required fields.')
    if category not in TICKET_CATEGORIES:
        raise ValidationError(f'Unknown category {category!r}.')
    if priority not in TICKET_PRIORITIES:
        raise ValidationError(f'Unknown priority {priority!r}.')

    attendant = _random_attendant()
    ticket = SupportTicket(
        user_id=user.id,
        subject=subject,
        description=description,
        category=category,
        priority=priority,
        assigned_to=attendant.id if attendant else None,
    )
    db.session.add(ticket)
    commit('create support ticket')
    if attendant is None:
        logger.info('Ticket %s created with no attendant available', ticket.id)
    else:
        logger.info('Ticket %s assigned to staff %s', ticket.id, attendant.id)
    feed.publish('customer_support', 'INSERT', ticket.as_dict())
    return ticket


def set_status(ticket, status):
    if status not in TICKET_STATUSES:
        raise ValidationError(f'Invalid ticket status {status!r}.')
    ticket.status = status
    if status == 'resolved':
        ticket.resolved_at = utcnow()
    commit('update ticket status')
    feed.publish('customer_support', 'UPDATE', ticket.as_dict())
    return ticket


def tickets_for_user(user_id):
    return SupportTicket.query.filter_by(user_id=user_id).order_by(SupportTicket.created_at.desc()).all()


def tickets_for_staff_email(email):
    return (
        SupportTicket.query
        .join(Staff, SupportTicket.assigned_to == Staff.id)
        .filter(Staff.email == email)
        .order_by(SupportTicket.created_at.desc())
        .all()
    )


def all_tickets():
    return SupportTicket.query.order_by(SupportTicket.created_at.desc()).all()
