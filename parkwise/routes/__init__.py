from datetime import datetime, timezone

from flask import request

from parkwise.errors import ValidationError


def payload():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Expected a JSON object.')
    return data


def text(value, field):
    """Stripped string value of a JSON field; missing values become an empty string."""
    if value is None:
        return ''
    if not isinstance(value, str):
        raise ValidationError(f'{field} must be text.')
    return value.strip()


def parse_datetime(value, field):
    if not value:
        raise ValidationError(f'{field} is required.')
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        raise ValidationError(f'{field} must be an ISO 8601 timestamp.') from None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_int(value, field, default=None):
    if value is None or value == '':
        if default is None:
            raise ValidationError(f'{field} is required.')
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a whole number.') from None


def booking_view(booking, with_token=False):
    slot = booking.slot
    zone = slot.zone
    data = booking.as_dict()
    data['slot'] = slot.as_dict()
    data['zone'] = {'id': zone.id, 'zone_name': zone.zone_name, 'floor_number': zone.floor_number}
    data['centre'] = {'id': zone.centre.id, 'name': zone.centre.name, 'address': zone.centre.address}
    data['vehicle'] = booking.vehicle.as_dict()
    data['payments'] = [payment.as_dict() for payment in booking.payments]
    if with_token and booking.token is not None:
        data['token'] = booking.token.as_dict()
    return data
