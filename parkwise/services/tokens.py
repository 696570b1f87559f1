"""Single-use access tokens handed out with every booking.

A token is shown to the attendant as a QR code at entry and again at exit.
The QR payload repeats the booking id, token code, slot number and plate so
the scan can be checked against the stored rows. With ``TOKEN_SIGNING``
enabled the payload is also signed with the app secret, so a hand-edited
payload is rejected before any lookup happens.
"""
import json
import logging
import secrets
import string
import time
from collections import namedtuple

from flask import current_app
from itsdangerous import BadSignature, URLSafeSerializer

from parkwise.errors import AlreadyUsed, NotFoundError, ValidationError
from parkwise.models import Token

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
SIGNING_SALT = 'parkwise-access-token'

BookingContext = namedtuple('BookingContext', ['token', 'booking', 'slot', 'vehicle', 'centre'])


class AccessTokenValidator:

    def _serializer(self):
        return URLSafeSerializer(current_app.config['SECRET_KEY'], salt=SIGNING_SALT)

    def _signing(self):
        return current_app.config.get('TOKEN_SIGNING', True)

    def new_code(self):
        prefix = current_app.config.get('TOKEN_PREFIX', 'PKW')
        suffix = ''.join(secrets.choice(CODE_ALPHABET) for _ in range(9))
        return f'{prefix}-{int(time.time() * 1000)}-{suffix}'

    def encode_payload(self, payload):
        if self._signing():
            return self._serializer().dumps(payload)
        return json.dumps(payload, sort_keys=True)

    def decode_payload(self, data):
        try:
            if self._signing():
                payload = self._serializer().loads(data)
            else:
                payload = json.loads(data)
        except (BadSignature, ValueError):
            raise ValidationError('Invalid QR code.') from None
        if not isinstance(payload, dict) or 'token_code' not in payload:
            raise ValidationError('Invalid QR code.')
        return payload

    def issue(self, booking, slot, vehicle):
        """Build the token for a freshly created booking (added to the session by the caller)."""
        code = self.new_code()
        payload = {
            'booking_id': booking.id,
            'token_code': code,
            'slot': slot.slot_number,
            'vehicle': vehicle.vehicle_number,
        }
        return Token(booking_id=booking.id, token_code=code, qr_data=self.encode_payload(payload))

    def _looks_like_payload(self, value):
        return value.lstrip().startswith('{') or '.' in value

    def redeem(self, value):
        """Resolve a scanned token code or QR payload to its booking.

        Raises NotFoundError when nothing matches and AlreadyUsed when the
        token was consumed by a booking that has since completed.
        """
        value = (value or '').strip()
        if not value:
            raise ValidationError('A token code is required.')

        payload = None
        token = Token.query.filter_by(token_code=value).first()
        if token is None and self._looks_like_payload(value):
            payload = self.decode_payload(value)
            token = Token.query.filter_by(
                token_code=payload['token_code'],
                booking_id=payload.get('booking_id'),
            ).first()
        if token is None:
            raise NotFoundError('Invalid QR code or token not found.')

        booking = token.booking
        slot = booking.slot
        vehicle = booking.vehicle
        if payload is not None and (payload.get('slot') != slot.slot_number
                                    or payload.get('vehicle') != vehicle.vehicle_number):
            logger.warning('QR payload for token %s does not match booking %s', token.token_code, booking.id)
            raise ValidationError('QR code does not match its booking.')

        if token.is_used and booking.status == 'completed':
            raise AlreadyUsed('This token has already been used and the booking is completed.')

        return BookingContext(token=token, booking=booking, slot=slot, vehicle=vehicle,
                              centre=slot.zone.centre)

    def mark_used(self, token, now):
        token.is_used = True
        token.used_at = now
        return token


token_validator = AccessTokenValidator()
