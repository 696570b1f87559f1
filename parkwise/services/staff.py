import logging
from datetime import date

from parkwise import db
from parkwise.auth import CENTRE_SCOPED, Role
from parkwise.errors import ConflictError, ValidationError
from parkwise.models import STAFF_ROLES, CentreAssignment, ParkingCentre, Staff
from parkwise.services import commit, get_or_raise

logger = logging.getLogger(__name__)


def roster(centre_id=None):
    query = Staff.query
    if centre_id is not None:
        query = query.filter_by(centre_id=centre_id)
    return query.order_by(Staff.name).all()


def add_member(centre_id, name, email, phone, role, shift_timing=None, hired_date=None):
    get_or_raise(ParkingCentre, centre_id, 'Parking centre')
    if not (name and email and phone):
        raise ValidationError('Name, email and phone are required.')
    if role not in STAFF_ROLES:
        raise ValidationError(f'Staff role must be one of {", ".join(STAFF_ROLES)}.')
    member = Staff(
        centre_id=centre_id,
        name=name,
        email=email,
        phone=phone,
        role=role,
        shift_timing=shift_timing,
        hired_date=hired_date or date.today(),
    )
    db.session.add(member)
    commit('add staff member')
    logger.info('Added %s %s to centre %s', role, email, centre_id)
    return member


def assign(user, centre_id, role):
    """Make ``user`` the manager or attendant of a centre."""
    try:
        role = Role(role)
    except ValueError:
        raise ValidationError(f'Unknown role {role!r}.') from None
    if role not in CENTRE_SCOPED:
        raise ValidationError('Only managers and attendants are assigned to a centre.')
    if user.role == Role.ADMIN.value:
        raise ConflictError('Admins cannot be assigned to a centre.')
    centre = get_or_raise(ParkingCentre, centre_id, 'Parking centre')

    assignment = user.assignment
    if assignment is None:
        assignment = CentreAssignment(user_id=user.id)
        db.session.add(assignment)
    assignment.centre_id = centre.id
    assignment.role = role.value
    user.role = role.value
    commit('assign staff role')
    logger.info('User %s is now %s of %s', user.id, role.value, centre.name)
    return assignment
