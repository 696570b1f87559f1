from decimal import Decimal

import click

from parkwise import db
from parkwise.errors import ParkWiseError
from parkwise.models import MembershipPlan, ParkingCentre
from parkwise.services import centres
from parkwise.services.bookings import orchestrator

DEMO_CENTRES = [
    {
        'name': 'City Mall Parking', 'address': 'Linking Road, Bandra West', 'city': 'Mumbai',
        'state': 'Maharashtra', 'pincode': '400050', 'total_capacity': 200,
        'zones': [
            ('Zone A', 'covered', 1, [('car', 2, 50), ('suv', 1, 70)]),
            ('Zone B', 'covered', 2, [('bike', 2, 30)]),
        ],
    },
    {
        'name': 'Business District Tower', 'address': 'Bandra Kurla Complex', 'city': 'Mumbai',
        'state': 'Maharashtra', 'pincode': '400051', 'total_capacity': 150,
        'zones': [
            ('Ground Floor', 'open', 0, [('car', 2, 60), ('suv', 1, 80)]),
            ('First Floor', 'covered', 1, [('bike', 1, 40)]),
        ],
    },
    {
        'name': 'Airport Plaza Parking', 'address': 'Andheri East', 'city': 'Mumbai',
        'state': 'Maharashtra', 'pincode': '400099', 'total_capacity': 300,
        'zones': [
            ('Level 1 Zone A', 'covered', 1, [('car', 2, 80)]),
            ('Level 1 Zone B', 'covered', 1, [('suv', 1, 100)]),
        ],
    },
]

DEMO_PLANS = [
    ('Bronze', 5, 99, 999, ['5% discount on bookings', 'Email support']),
    ('Silver', 10, 199, 1999, ['10% discount on bookings', 'Priority support', 'Extended booking hours']),
    ('Gold', 15, 399, 3999, ['15% discount on bookings', '24/7 support', 'Reserved parking spots',
                            'Free cancellation']),
]


def seed_demo_data():
    created = 0
    for site in DEMO_CENTRES:
        if ParkingCentre.query.filter_by(name=site['name']).first():
            continue
        centre = centres.create_centre(
            name=site['name'], address=site['address'], city=site['city'], state=site['state'],
            pincode=site['pincode'], total_capacity=site['total_capacity'],
        )
        for zone_name, zone_type, floor, groups in site['zones']:
            zone = centres.create_zone(centre.id, zone_name, zone_type, floor)
            for vehicle_type, count, rate in groups:
                centres.add_slots(zone.id, count, vehicle_type, rate)
        created += 1

    for name, discount, monthly, yearly, benefits in DEMO_PLANS:
        if not MembershipPlan.query.filter_by(name=name).first():
            db.session.add(MembershipPlan(
                name=name, discount_percentage=Decimal(discount), price_monthly=Decimal(monthly),
                price_yearly=Decimal(yearly), benefits=benefits,
            ))
    db.session.commit()
    return created


def register_commands(app):

    @app.cli.command('seed-demo')
    def seed_demo():
        """Load the demo parking centres and membership plans."""
        created = seed_demo_data()
        click.echo(f'Seeded {created} parking centres.')

    @app.cli.command('expire-bookings')
    @click.option('--grace', type=int, default=None, help='Minutes after booking start before a no-show expires.')
    def expire_bookings(grace):
        """Cancel pending bookings whose start time has passed without an entry scan."""
        try:
            cancelled = orchestrator.expire_stale_pending(grace_minutes=grace)
        except ParkWiseError as exc:
            raise click.ClickException(exc.message) from exc
        click.echo(f'Cancelled {len(cancelled)} stale bookings.')
