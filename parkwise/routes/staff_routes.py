from flask import Blueprint, jsonify, request
from flask_login import current_user

from parkwise.auth import (Capability, Role, assigned_centre_id, check_centre_scope,
                           check_ticket_scope, has_capability, requires)
from parkwise.errors import AccessDenied, ValidationError
from parkwise.models import SupportTicket, User
from parkwise.routes import booking_view, payload
from parkwise.services import get_or_raise, reports, staff, support
from parkwise.services.bookings import orchestrator
from parkwise.services.tokens import token_validator

staff_bp = Blueprint('staff', __name__, url_prefix='/api/staff')


def _centre_id():
    centre_id = assigned_centre_id(current_user)
    if centre_id is None:
        raise AccessDenied('You are not assigned to a parking centre.')
    return centre_id


def _scanned_code():
    code = payload().get('code')
    if not code:
        raise ValidationError('Scan a QR code or enter a token code.')
    return code


def _scan_view(ctx):
    return {
        'token_code': ctx.token.token_code,
        'is_used': ctx.token.is_used,
        'booking': booking_view(ctx.booking),
    }


@staff_bp.route('/scan', methods=['POST'])
@requires(Capability.SCAN_TOKENS)
def scan():
    ctx = token_validator.redeem(_scanned_code())
    check_centre_scope(current_user, ctx.centre.id)
    return jsonify(_scan_view(ctx))


@staff_bp.route('/entry', methods=['POST'])
@requires(Capability.SCAN_TOKENS)
def entry():
    ctx = orchestrator.entry(_scanned_code(), actor=current_user)
    body = _scan_view(ctx)
    body['message'] = 'Entry confirmed! Booking is now active.'
    return jsonify(body)


@staff_bp.route('/exit', methods=['POST'])
@requires(Capability.SCAN_TOKENS)
def exit_scan():
    ctx, settlement = orchestrator.exit(_scanned_code(), actor=current_user)
    body = _scan_view(ctx)
    body['settlement'] = settlement.as_dict()
    body['message'] = (f'Exit confirmed! Duration: {ctx.booking.total_hours} hours. '
                       f'Amount: {float(settlement.amount):.2f}')
    return jsonify(body)


@staff_bp.route('/centre')
@requires(Capability.VIEW_CENTRE)
def centre_dashboard():
    centre_id = _centre_id()
    return jsonify(reports.centre_summary(
        centre_id, include_revenue=has_capability(current_user, Capability.VIEW_REVENUE)))


@staff_bp.route('/bookings')
@requires(Capability.VIEW_CENTRE)
def centre_bookings():
    return jsonify([booking_view(b) for b in orchestrator.for_centre(_centre_id())])


@staff_bp.route('/bookings/<int:booking_id>', methods=['PATCH'])
@requires(Capability.UPDATE_BOOKINGS)
def update_booking_status(booking_id):
    booking = orchestrator.get(booking_id)
    check_centre_scope(current_user, booking.slot.zone.centre_id)
    status = payload().get('status')
    if not status:
        raise ValidationError('status is required.')
    booking = orchestrator.set_status(booking, status)
    return jsonify(booking_view(booking))


@staff_bp.route('/users')
@requires(Capability.VIEW_USERS)
def view_users():
    users = User.query.filter(User.role != Role.ADMIN.value).order_by(User.created_at.desc()).all()
    return jsonify([dict(user.as_dict(), vehicles=[vehicle.as_dict() for vehicle in user.vehicles])
                    for user in users])


@staff_bp.route('/roster', methods=['GET', 'POST'])
@requires(Capability.MANAGE_STAFF)
def roster():
    centre_id = _centre_id()
    if request.method == 'POST':
        data = payload()
        member = staff.add_member(
            centre_id,
            name=data.get('name'),
            email=data.get('email'),
            phone=data.get('phone'),
            role=data.get('role'),
            shift_timing=data.get('shift_timing'),
        )
        return jsonify(member.as_dict()), 201
    return jsonify([member.as_dict() for member in staff.roster(centre_id)])


@staff_bp.route('/tickets')
@requires(Capability.MANAGE_TICKETS)
def assigned_tickets():
    return jsonify([ticket.as_dict() for ticket in support.tickets_for_staff_email(current_user.email)])


@staff_bp.route('/tickets/<int:ticket_id>', methods=['PATCH'])
@requires(Capability.MANAGE_TICKETS)
def update_ticket(ticket_id):
    ticket = get_or_raise(SupportTicket, ticket_id, 'Ticket')
    check_ticket_scope(current_user, ticket)
    ticket = support.set_status(ticket, payload().get('status'))
    return jsonify(ticket.as_dict())
