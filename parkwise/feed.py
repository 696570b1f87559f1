"""Change feed used to trigger dashboard refreshes.

Every write that other screens care about is published here after its
transaction commits. Delivery is best effort: a failing receiver is logged
and never affects the write that produced the event.
"""
import logging

from blinker import Namespace

logger = logging.getLogger(__name__)

TABLES = ('bookings', 'parking_slots', 'payments', 'customer_support')

_signals = Namespace()
_channels = {table: _signals.signal(table) for table in TABLES}


def _channel(table):
    try:
        return _channels[table]
    except KeyError:
        raise ValueError(f'No change feed for table {table!r}') from None


def subscribe(table, receiver, **filters):
    """Call ``receiver(event, row)`` for changes whose row matches ``filters``.

    Returns the connected handler; pass it to ``unsubscribe`` to stop.
    """
    def handler(sender, event, row):
        if all(row.get(key) == value for key, value in filters.items()):
            receiver(event, row)

    _channel(table).connect(handler, weak=False)
    return handler


def unsubscribe(table, handler):
    _channel(table).disconnect(handler)


def publish(table, event, row):
    channel = _channel(table)
    for receiver in list(channel.receivers_for(table)):
        try:
            receiver(table, event=event, row=row)
        except Exception:
            logger.exception('Change feed receiver failed for %s %s', table, event)
