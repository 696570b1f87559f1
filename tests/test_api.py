from datetime import timedelta

from parkwise.models import utcnow
from parkwise.services import centres, staff
from tests.base import ParkWiseTestCase


class ApiTestCase(ParkWiseTestCase):

    def setUp(self):
        super().setUp()
        self.attendant = self.make_user('meera@example.com')
        staff.assign(self.attendant, self.centre.id, 'attendant')

    def login_admin(self):
        return self.login(self.app.config['ADMIN_EMAIL'], self.app.config['ADMIN_PASSWORD'])

    def post_booking(self, slot=None, hours=2, **overrides):
        start = utcnow() + timedelta(hours=1)
        body = {
            'vehicle_id': self.car.id,
            'slot_id': (slot or self.slot).id,
            'booking_start': start.isoformat() + 'Z',
            'booking_end': (start + timedelta(hours=hours)).isoformat() + 'Z',
            'payment_method': 'upi',
        }
        body.update(overrides)
        return self.client.post('/api/bookings', json=body)


class TestAccounts(ApiTestCase):

    def test_register_always_creates_plain_user(self):
        response = self.client.post('/api/register', json={
            'email': 'Kiran@Example.com', 'password': 'secret123', 'full_name': 'Kiran', 'role': 'admin',
        })
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.get_json()['role'], 'user')
        self.assertEqual(response.get_json()['email'], 'kiran@example.com')

        self.assertEqual(self.login('kiran@example.com').status_code, 200)
        loyalty = self.client.get('/api/loyalty').get_json()
        self.assertEqual(loyalty['points'], 0)

    def test_duplicate_email(self):
        response = self.client.post('/api/register', json={
            'email': 'asha@example.com', 'password': 'secret123', 'full_name': 'Asha',
        })
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()['code'], 'conflict')

    def test_wrong_password(self):
        response = self.login('asha@example.com', 'nope')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()['code'], 'invalid_credentials')

    def test_login_required(self):
        response = self.client.get('/api/bookings')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()['code'], 'unauthorized')

    def test_user_cannot_reach_admin(self):
        self.login('asha@example.com')
        response = self.client.get('/api/admin/summary')
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json()['code'], 'access_denied')

    def test_profile_and_vehicles(self):
        self.login('asha@example.com')
        profile = self.client.patch('/api/profile', json={'phone': '9820000000'}).get_json()
        self.assertEqual(profile['phone'], '9820000000')

        response = self.client.post('/api/vehicles', json={'vehicle_number': 'mh12 xy 9999', 'vehicle_type': 'bike'})
        self.assertEqual(response.status_code, 201)
        bike = response.get_json()
        self.assertEqual(bike['vehicle_number'], 'MH12 XY 9999')
        self.assertEqual(len(self.client.get('/api/vehicles').get_json()), 2)

        bad = self.client.post('/api/vehicles', json={'vehicle_number': 'X1', 'vehicle_type': 'boat'})
        self.assertEqual(bad.status_code, 400)

        self.post_booking()
        response = self.client.delete(f'/api/vehicles/{self.car.id}')
        self.assertEqual(response.status_code, 409)
        self.assertEqual(self.client.delete(f'/api/vehicles/{bike["id"]}').status_code, 200)

    def test_vehicle_with_past_booking_is_kept(self):
        self.login('asha@example.com')
        booking_id = self.post_booking().get_json()['booking']['id']
        self.assertEqual(self.client.post(f'/api/bookings/{booking_id}/cancel').status_code, 200)

        response = self.client.delete(f'/api/vehicles/{self.car.id}')
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()['code'], 'conflict')

        response = self.client.get('/api/bookings')
        self.assertEqual(response.status_code, 200)
        self.assertEqual([b['id'] for b in response.get_json()], [booking_id])

    def test_text_fields_must_be_strings(self):
        self.login('asha@example.com')
        response = self.client.patch('/api/profile', json={'full_name': 42})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()['code'], 'validation_error')

        response = self.client.post('/api/register', json={
            'email': ['kiran@example.com'], 'password': 'secret123', 'full_name': 'Kiran',
        })
        self.assertEqual(response.status_code, 400)

        response = self.client.post('/api/vehicles', json={'vehicle_number': 1234, 'vehicle_type': 'car'})
        self.assertEqual(response.status_code, 400)

    def test_unknown_route_is_json(self):
        response = self.client.get('/api/nowhere')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()['code'], 'not_found')


class TestBookingFlow(ApiTestCase):

    def test_book_enter_and_leave(self):
        self.login('asha@example.com')
        listed = self.client.get(f'/api/centres/{self.centre.id}/available-slots?vehicle_type=car').get_json()
        self.assertEqual([s['slot_number'] for s in listed], ['A-01', 'A-02'])

        response = self.post_booking()
        self.assertEqual(response.status_code, 201)
        body = response.get_json()
        self.assertEqual(body['booking']['status'], 'pending')
        self.assertEqual(body['pricing']['total'], 100.0)
        self.assertEqual(body['pricing']['points_earned'], 10)
        self.assertEqual(body['payment']['payment_status'], 'completed')
        code = body['token']['token_code']
        qr_data = body['token']['qr_data']

        listed = self.client.get(f'/api/centres/{self.centre.id}/available-slots?vehicle_type=car').get_json()
        self.assertEqual([s['slot_number'] for s in listed], ['A-02'])

        self.login('meera@example.com')
        response = self.client.post('/api/staff/entry', json={'code': code})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['booking']['status'], 'active')

        response = self.client.post('/api/staff/exit', json={'code': qr_data})
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(body['booking']['status'], 'completed')
        self.assertTrue(body['is_used'])
        self.assertEqual(body['settlement']['amount'], 50.0)
        self.assertEqual(body['settlement']['payment_status'], 'pending')

        response = self.client.post('/api/staff/exit', json={'code': code})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()['code'], 'already_used')

    def test_double_booking_conflicts(self):
        self.login('asha@example.com')
        self.assertEqual(self.post_booking().status_code, 201)
        response = self.post_booking()
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()['code'], 'conflict')

    def test_bad_timestamp(self):
        self.login('asha@example.com')
        response = self.post_booking(booking_start='tomorrow morning')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()['code'], 'validation_error')

    def test_cancel_own_booking_only(self):
        self.login('asha@example.com')
        booking_id = self.post_booking().get_json()['booking']['id']

        self.make_user('ravi@example.com')
        self.login('ravi@example.com')
        self.assertEqual(self.client.post(f'/api/bookings/{booking_id}/cancel').status_code, 403)

        self.login('asha@example.com')
        response = self.client.post(f'/api/bookings/{booking_id}/cancel')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['status'], 'cancelled')
        self.assertEqual(response.get_json()['slot']['status'], 'available')

    def test_attendant_of_other_centre_cannot_scan(self):
        airport = centres.create_centre(name='Airport Plaza Parking', address='Andheri East',
                                        city='Mumbai', pincode='400099', total_capacity=5)
        outsider = self.make_user('joel@example.com')
        staff.assign(outsider, airport.id, 'attendant')

        self.login('asha@example.com')
        code = self.post_booking().get_json()['token']['token_code']

        self.login('joel@example.com')
        response = self.client.post('/api/staff/entry', json={'code': code})
        self.assertEqual(response.status_code, 403)

        response = self.client.post('/api/staff/scan', json={'code': code})
        self.assertEqual(response.status_code, 403)

    def test_scan_without_code(self):
        self.login('meera@example.com')
        response = self.client.post('/api/staff/entry', json={})
        self.assertEqual(response.status_code, 400)


class TestAdministration(ApiTestCase):

    def test_admin_assigns_manager(self):
        manager = self.make_user('priya@example.com')
        self.login_admin()
        response = self.client.post(f'/api/admin/users/{manager.id}/assign',
                                    json={'centre_id': self.centre.id, 'role': 'manager'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['user']['role'], 'manager')

        self.login('priya@example.com')
        dashboard = self.client.get('/api/staff/centre').get_json()
        self.assertIn('revenue', dashboard)
        self.assertEqual(dashboard['slots']['total'], 3)

        self.login('meera@example.com')
        dashboard = self.client.get('/api/staff/centre').get_json()
        self.assertNotIn('revenue', dashboard)

    def test_assign_rejects_unknown_role(self):
        self.login_admin()
        response = self.client.post(f'/api/admin/users/{self.user.id}/assign',
                                    json={'centre_id': self.centre.id, 'role': 'superuser'})
        self.assertEqual(response.status_code, 400)

    def test_override_goes_through_state_machine(self):
        self.login('asha@example.com')
        booking_id = self.post_booking().get_json()['booking']['id']

        self.login_admin()
        response = self.client.patch(f'/api/admin/bookings/{booking_id}', json={'status': 'cancelled'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['slot']['status'], 'available')

        response = self.client.patch(f'/api/admin/bookings/{booking_id}', json={'status': 'active'})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()['code'], 'invalid_transition')

    def test_summary(self):
        self.login('asha@example.com')
        self.post_booking()
        self.login_admin()
        summary = self.client.get('/api/admin/summary').get_json()
        self.assertEqual(summary['slots'], {'total': 3, 'available': 2, 'occupied': 1, 'reserved': 0})
        self.assertEqual(summary['bookings']['pending'], 1)
        self.assertEqual(summary['revenue'], 100.0)

    def test_create_centre_zone_and_slots(self):
        self.login_admin()
        response = self.client.post('/api/admin/centres', json={
            'name': 'Business District Tower', 'address': 'Bandra Kurla Complex', 'city': 'Mumbai',
            'pincode': '400051', 'total_capacity': 4,
        })
        self.assertEqual(response.status_code, 201)
        centre_id = response.get_json()['id']

        zone = self.client.post(f'/api/admin/centres/{centre_id}/zones',
                                json={'zone_name': 'Ground Floor', 'zone_type': 'open', 'floor_number': 0})
        self.assertEqual(zone.status_code, 201)
        zone_id = zone.get_json()['id']

        slots = self.client.post(f'/api/admin/zones/{zone_id}/slots',
                                 json={'count': 4, 'vehicle_type': 'suv', 'hourly_rate': 80, 'prefix': 'G'})
        self.assertEqual(slots.status_code, 201)
        self.assertEqual([s['slot_number'] for s in slots.get_json()], ['G-01', 'G-02', 'G-03', 'G-04'])

        over = self.client.post(f'/api/admin/zones/{zone_id}/slots',
                                json={'count': 1, 'vehicle_type': 'suv', 'hourly_rate': 80})
        self.assertEqual(over.status_code, 400)


class TestCentreStaff(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.manager = self.make_user('priya@example.com')
        staff.assign(self.manager, self.centre.id, 'manager')

    def test_attendant_moves_booking_through_its_states(self):
        self.login('asha@example.com')
        booking_id = self.post_booking().get_json()['booking']['id']

        self.login('meera@example.com')
        response = self.client.patch(f'/api/staff/bookings/{booking_id}', json={'status': 'active'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['status'], 'active')
        self.assertEqual(response.get_json()['slot']['status'], 'occupied')

        response = self.client.patch(f'/api/staff/bookings/{booking_id}', json={'status': 'cancelled'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['slot']['status'], 'available')

        response = self.client.patch(f'/api/staff/bookings/{booking_id}', json={'status': 'active'})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()['code'], 'invalid_transition')

    def test_booking_updates_stay_in_own_centre(self):
        airport = centres.create_centre(name='Airport Plaza Parking', address='Andheri East',
                                        city='Mumbai', pincode='400099', total_capacity=5)
        staff.assign(self.make_user('joel@example.com'), airport.id, 'attendant')

        self.login('asha@example.com')
        booking_id = self.post_booking().get_json()['booking']['id']

        self.login('joel@example.com')
        response = self.client.patch(f'/api/staff/bookings/{booking_id}', json={'status': 'cancelled'})
        self.assertEqual(response.status_code, 403)

        self.login('meera@example.com')
        response = self.client.patch(f'/api/staff/bookings/{booking_id}', json={})
        self.assertEqual(response.status_code, 400)

    def test_manager_bookings_are_read_only(self):
        self.login('asha@example.com')
        booking_id = self.post_booking().get_json()['booking']['id']

        self.login('priya@example.com')
        listed = self.client.get('/api/staff/bookings').get_json()
        self.assertEqual([b['id'] for b in listed], [booking_id])
        response = self.client.patch(f'/api/staff/bookings/{booking_id}', json={'status': 'cancelled'})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json()['code'], 'access_denied')

    def test_manager_lists_users_with_vehicles(self):
        self.login('priya@example.com')
        response = self.client.get('/api/staff/users')
        self.assertEqual(response.status_code, 200)
        users = {u['email']: u for u in response.get_json()}
        self.assertEqual(set(users), {'asha@example.com', 'meera@example.com', 'priya@example.com'})
        self.assertEqual([v['vehicle_number'] for v in users['asha@example.com']['vehicles']], ['MH01AB1234'])
        self.assertEqual(users['meera@example.com']['role'], 'attendant')

        self.login('meera@example.com')
        self.assertEqual(self.client.get('/api/staff/users').status_code, 403)
        self.login('asha@example.com')
        self.assertEqual(self.client.get('/api/staff/users').status_code, 403)


class TestSupport(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.member = staff.add_member(self.centre.id, 'Meera', 'meera@example.com', '9000000000', 'Attendant')
        staff.assign(self.make_user('joel.staff@example.com'), self.centre.id, 'attendant')

    def test_ticket_is_assigned_and_resolved(self):
        self.login('asha@example.com')
        response = self.client.post('/api/support', json={
            'subject': 'Gate closed', 'description': 'Exit gate would not open.', 'priority': 'high',
        })
        self.assertEqual(response.status_code, 201)
        ticket = response.get_json()
        self.assertEqual(ticket['assigned_to'], self.member.id)

        self.login('joel.staff@example.com')
        response = self.client.patch(f'/api/staff/tickets/{ticket["id"]}', json={'status': 'resolved'})
        self.assertEqual(response.status_code, 403)

        self.login('meera@example.com')
        assigned = self.client.get('/api/staff/tickets').get_json()
        self.assertEqual([t['id'] for t in assigned], [ticket['id']])
        response = self.client.patch(f'/api/staff/tickets/{ticket["id"]}', json={'status': 'resolved'})
        self.assertEqual(response.status_code, 200)
        self.assertIsNotNone(response.get_json()['resolved_at'])

    def test_missing_fields(self):
        self.login('asha@example.com')
        response = self.client.post('/api/support', json={'subject': 'Help'})
        self.assertEqual(response.status_code, 400)

    def test_ticket_desk_under_admin(self):
        self.login('asha@example.com')
        ticket = self.client.post('/api/support', json={
            'subject': 'Wrong charge', 'description': 'Charged twice for one booking.',
        }).get_json()

        self.login_admin()
        listed = self.client.get('/api/admin/tickets').get_json()
        self.assertEqual([t['id'] for t in listed], [ticket['id']])
        response = self.client.patch(f'/api/admin/tickets/{ticket["id"]}', json={'status': 'in_progress'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['status'], 'in_progress')

        self.login('joel.staff@example.com')
        self.assertEqual(self.client.get('/api/admin/tickets').get_json(), [])
        response = self.client.patch(f'/api/admin/tickets/{ticket["id"]}', json={'status': 'closed'})
        self.assertEqual(response.status_code, 403)

        self.login('asha@example.com')
        self.assertEqual(self.client.get('/api/admin/tickets').status_code, 403)
