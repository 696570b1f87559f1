from decimal import Decimal, InvalidOperation

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user

from parkwise import db
from parkwise.auth import Capability, Role, check_ticket_scope, requires, role_of
from parkwise.errors import ConflictError, ValidationError
from parkwise.models import MembershipPlan, SupportTicket, User
from parkwise.routes import booking_view, parse_int, payload
from parkwise.services import centres, commit, get_or_raise, reports, staff, support
from parkwise.services.bookings import orchestrator

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')


@admin_bp.route('/summary')
@requires(Capability.MANAGE_CENTRES)
def admin_summary():
    return jsonify(reports.admin_summary())


@admin_bp.route('/users')
@requires(Capability.ASSIGN_ROLES)
def view_users():
    users = User.query.filter(User.role != 'admin').order_by(User.created_at.desc()).all()
    return jsonify([user.as_dict() for user in users])


@admin_bp.route('/users/<int:user_id>/assign', methods=['POST'])
@requires(Capability.ASSIGN_ROLES)
def assign_role(user_id):
    user = get_or_raise(User, user_id, 'User')
    data = payload()
    assignment = staff.assign(user, parse_int(data.get('centre_id'), 'centre_id'), data.get('role'))
    return jsonify({
        'message': f'Successfully assigned as {assignment.role} of {assignment.centre.name}',
        'user': user.as_dict(),
        'centre_id': assignment.centre_id,
    })


# centres, zones, slots

@admin_bp.route('/centres', methods=['GET', 'POST'])
@requires(Capability.MANAGE_CENTRES)
def manage_centres():
    if request.method == 'POST':
        data = payload()
        centre = centres.create_centre(
            name=data.get('name'),
            address=data.get('address'),
            city=data.get('city'),
            state=data.get('state'),
            pincode=data.get('pincode'),
            operating_hours=data.get('operating_hours'),
            total_capacity=parse_int(data.get('total_capacity'), 'total_capacity'),
            latitude=data.get('latitude'),
            longitude=data.get('longitude'),
        )
        return jsonify(centre.as_dict(with_zones=True)), 201

    return jsonify([dict(centre.as_dict(with_zones=True), stats=reports.centre_summary(centre.id, True))
                    for centre in centres.list_centres()])


@admin_bp.route('/centres/<int:centre_id>', methods=['DELETE'])
@requires(Capability.MANAGE_CENTRES)
def delete_centre(centre_id):
    centres.delete_centre(centre_id)
    return jsonify({'message': 'Parking centre deleted successfully.'})


@admin_bp.route('/centres/<int:centre_id>/zones', methods=['POST'])
@requires(Capability.MANAGE_CENTRES)
def add_zone(centre_id):
    data = payload()
    floor = data.get('floor_number')
    zone = centres.create_zone(
        centre_id,
        zone_name=data.get('zone_name'),
        zone_type=data.get('zone_type'),
        floor_number=parse_int(floor, 'floor_number') if floor is not None else None,
    )
    return jsonify(zone.as_dict()), 201


@admin_bp.route('/zones/<int:zone_id>/slots', methods=['POST'])
@requires(Capability.MANAGE_CENTRES)
def add_slots(zone_id):
    data = payload()
    slots = centres.add_slots(
        zone_id,
        count=parse_int(data.get('count'), 'count'),
        vehicle_type=data.get('vehicle_type'),
        hourly_rate=data.get('hourly_rate'),
        prefix=data.get('prefix'),
    )
    return jsonify([slot.as_dict() for slot in slots]), 201


@admin_bp.route('/slots/<int:slot_id>', methods=['PATCH'])
@requires(Capability.MANAGE_CENTRES)
def update_slot(slot_id):
    data = payload()
    slot = centres.update_slot(slot_id, status=data.get('status'), hourly_rate=data.get('hourly_rate'))
    return jsonify(slot.as_dict())


# bookings

@admin_bp.route('/bookings')
@requires(Capability.MANAGE_BOOKINGS)
def view_bookings():
    return jsonify([booking_view(b) for b in orchestrator.all()])


@admin_bp.route('/bookings/<int:booking_id>', methods=['PATCH'])
@requires(Capability.MANAGE_BOOKINGS)
def update_booking_status(booking_id):
    booking = orchestrator.get(booking_id)
    status = payload().get('status')
    if not status:
        raise ValidationError('status is required.')
    booking = orchestrator.set_status(booking, status)
    return jsonify(booking_view(booking))


@admin_bp.route('/bookings/expire', methods=['POST'])
@requires(Capability.MANAGE_BOOKINGS)
def expire_bookings():
    cancelled = orchestrator.expire_stale_pending()
    current_app.logger.info('Manual expiry run cancelled %d bookings', len(cancelled))
    return jsonify({'cancelled': cancelled})


# staff and support

@admin_bp.route('/staff', methods=['GET', 'POST'])
@requires(Capability.ASSIGN_ROLES)
def manage_staff():
    if request.method == 'POST':
        data = payload()
        member = staff.add_member(
            parse_int(data.get('centre_id'), 'centre_id'),
            name=data.get('name'),
            email=data.get('email'),
            phone=data.get('phone'),
            role=data.get('role'),
            shift_timing=data.get('shift_timing'),
        )
        return jsonify(member.as_dict()), 201
    return jsonify([member.as_dict() for member in staff.roster()])


@admin_bp.route('/tickets')
@requires(Capability.MANAGE_TICKETS)
def view_tickets():
    if role_of(current_user) == Role.ATTENDANT:
        return jsonify([ticket.as_dict() for ticket in support.tickets_for_staff_email(current_user.email)])
    return jsonify([ticket.as_dict() for ticket in support.all_tickets()])


@admin_bp.route('/tickets/<int:ticket_id>', methods=['PATCH'])
@requires(Capability.MANAGE_TICKETS)
def update_ticket(ticket_id):
    ticket = get_or_raise(SupportTicket, ticket_id, 'Ticket')
    check_ticket_scope(current_user, ticket)
    return jsonify(support.set_status(ticket, payload().get('status')).as_dict())


# membership plans

def _price(value, field):
    try:
        price = Decimal(str(value))
    except (InvalidOperation, TypeError):
        raise ValidationError(f'{field} must be a number.') from None
    if price < 0:
        raise ValidationError(f'{field} cannot be negative.')
    return price


@admin_bp.route('/plans', methods=['POST'])
@requires(Capability.MANAGE_CENTRES)
def add_plan():
    data = payload()
    name = (data.get('name') or '').strip()
    if not name:
        raise ValidationError('Plan name is required.')
    if MembershipPlan.query.filter_by(name=name).first():
        raise ConflictError(f'A plan named {name!r} already exists.')
    discount = _price(data.get('discount_percentage', 0), 'discount_percentage')
    if discount > 100:
        raise ValidationError('discount_percentage cannot exceed 100.')
    plan = MembershipPlan(
        name=name,
        discount_percentage=discount,
        price_monthly=_price(data.get('price_monthly'), 'price_monthly'),
        price_yearly=_price(data.get('price_yearly'), 'price_yearly'),
        benefits=data.get('benefits') or [],
    )
    db.session.add(plan)
    commit('add membership plan')
    return jsonify(plan.as_dict()), 201
