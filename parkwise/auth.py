from enum import Enum
from functools import wraps

from flask_login import current_user, login_required

from parkwise.errors import AccessDenied


class Role(str, Enum):
    ADMIN = 'admin'
    MANAGER = 'manager'
    ATTENDANT = 'attendant'
    USER = 'user'


class Capability(str, Enum):
    BOOK = 'book'
    SCAN_TOKENS = 'scan_tokens'
    VIEW_CENTRE = 'view_centre'
    VIEW_REVENUE = 'view_revenue'
    MANAGE_STAFF = 'manage_staff'
    MANAGE_TICKETS = 'manage_tickets'
    UPDATE_BOOKINGS = 'update_bookings'
    VIEW_USERS = 'view_users'
    MANAGE_BOOKINGS = 'manage_bookings'
    MANAGE_CENTRES = 'manage_centres'
    ASSIGN_ROLES = 'assign_roles'


CAPABILITIES = {
    Role.USER: frozenset({Capability.BOOK}),
    Role.ATTENDANT: frozenset({
        Capability.SCAN_TOKENS,
        Capability.VIEW_CENTRE,
        Capability.UPDATE_BOOKINGS,
        Capability.MANAGE_TICKETS,
    }),
    Role.MANAGER: frozenset({
        Capability.SCAN_TOKENS,
        Capability.VIEW_CENTRE,
        Capability.VIEW_REVENUE,
        Capability.VIEW_USERS,
        Capability.MANAGE_STAFF,
    }),
    Role.ADMIN: frozenset(Capability),
}

# roles whose reach is limited to the centre they are assigned to
CENTRE_SCOPED = (Role.MANAGER, Role.ATTENDANT)


def role_of(user):
    try:
        return Role(getattr(user, 'role', ''))
    except ValueError:
        return None


def has_capability(user, capability):
    role = role_of(user)
    return role is not None and capability in CAPABILITIES[role]


def requires(capability):
    """Gate a view on a capability of the logged-in user's role."""
    def decorator(view):
        @wraps(view)
        @login_required
        def wrapped(*args, **kwargs):
            if not has_capability(current_user, capability):
                raise AccessDenied('You do not have access to this resource.')
            return view(*args, **kwargs)
        return wrapped
    return decorator


def assigned_centre_id(user):
    assignment = getattr(user, 'assignment', None)
    return assignment.centre_id if assignment else None


def check_centre_scope(user, centre_id):
    """Managers and attendants may only act on their own centre."""
    role = role_of(user)
    if role == Role.ADMIN:
        return
    if role in CENTRE_SCOPED and assigned_centre_id(user) == centre_id:
        return
    raise AccessDenied('This booking belongs to another parking centre.')


def check_ticket_scope(user, ticket):
    """Attendants may only work the tickets assigned to them."""
    if role_of(user) != Role.ATTENDANT:
        return
    if ticket.assignee is None or ticket.assignee.email != user.email:
        raise AccessDenied('This ticket is not assigned to you.')
