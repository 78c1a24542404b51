"""
Test suite for the core module
Tests: registration, JWT login, profile, user administration, audit logs, error envelope and cache helpers
"""
from django.core.cache import cache
from django.test import TestCase
from rest_framework import status
from rest_framework.exceptions import ValidationError
from marketplace.core.cache_utils import cached_query, invalidate_cache_pattern
from marketplace.core.exceptions import _validation_details, error_payload
from marketplace.core.models import AuditLog, User
from marketplace.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from marketplace.core.utils import create_audit_log


class AuthTests(TestCase):
    """Test registration, login and token refresh"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()

    def _register(self, **overrides):
        payload = {
            'username': 'ravi',
            'email': 'Ravi@Example.com',
            'password': 'Harvest#2024',
            'password_confirm': 'Harvest#2024',
            'role': 'farmer',
        }
        payload.update(overrides)
        return self.client.post('/api/v1/auth/register/', payload, format='json')

    def test_register_farmer(self):
        response = self._register()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['data']['user']['role'], 'farmer')
        self.assertIn('access', response.data['data'])
        self.assertEqual(User.objects.get(username='ravi').email, 'ravi@example.com')

    def test_register_cannot_self_assign_admin(self):
        response = self._register(role='admin')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'VALIDATION_ERROR')

    def test_register_password_mismatch(self):
        response = self._register(password_confirm='Different#2024')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['details'][0]['field'], 'password')

    def test_register_duplicate_email(self):
        TestDataFactory.create_customer(email='ravi@example.com')
        response = self._register()
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_login_and_refresh(self):
        TestDataFactory.create_customer(username='meera', password='Harvest#2024')
        response = self.client.post('/api/v1/auth/login/', {'username': 'meera', 'password': 'Harvest#2024'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['user']['username'], 'meera')

        response = self.client.post('/api/v1/auth/refresh/', {'refresh': response.data['data']['refresh']},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data['data'])

    def test_login_wrong_password(self):
        TestDataFactory.create_customer(username='meera')
        response = self.client.post('/api/v1/auth/login/', {'username': 'meera', 'password': 'nope'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data['success'])

    def test_refresh_with_garbage_token(self):
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': 'not-a-token'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['error']['code'], 'INVALID_TOKEN')


class UserTests(TestCase):
    """Test profile and admin user management"""

    def setUp(self):
        self.admin = TestDataFactory.create_admin()
        self.customer = TestDataFactory.create_customer()
        self.client = AuthenticatedAPIClient()

    def test_me(self):
        self.client.authenticate_user(self.customer)
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['id'], self.customer.id)

    def test_me_cannot_change_role(self):
        self.client.authenticate_user(self.customer)
        response = self.client.patch('/api/v1/auth/me/', {'role': 'admin', 'phone': '9876543210'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.role, User.ROLE_CUSTOMER)
        self.assertEqual(self.customer.phone, '9876543210')

    def test_user_list_filter_by_role(self):
        TestDataFactory.create_farmer()
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/users/?role=farmer')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['count'], 1)

    def test_user_list_forbidden_for_customer(self):
        self.client.authenticate_user(self.customer)
        response = self.client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error']['code'], 'UNAUTHORIZED')

    def test_ban_toggle_and_audit(self):
        self.client.authenticate_user(self.admin)
        response = self.client.put(f'/api/v1/users/{self.customer.id}/ban/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['data']['is_active'])
        self.assertTrue(AuditLog.objects.filter(action='user_ban', object_id=str(self.customer.id)).exists())

        response = self.client.put(f'/api/v1/users/{self.customer.id}/ban/', {'banned': False}, format='json')
        self.assertTrue(response.data['data']['is_active'])

    def test_ban_unknown_user(self):
        self.client.authenticate_user(self.admin)
        response = self.client.put('/api/v1/users/999999/ban/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error']['code'], 'NOT_FOUND')

    def test_superuser_counts_as_admin(self):
        root = TestDataFactory.create_customer(is_superuser=True)
        self.assertTrue(root.is_marketplace_admin)
        self.client.authenticate_user(root)
        response = self.client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)


class AuditLogTests(TestCase):
    """Test audit log helper and listing"""

    def setUp(self):
        self.admin = TestDataFactory.create_admin()

    def test_create_audit_log_requires_fields(self):
        self.assertIsNone(create_audit_log(action='create', model_name='Product'))
        self.assertFalse(AuditLog.objects.exists())

    def test_create_audit_log(self):
        log = create_audit_log(user=self.admin, action='create', model_name='Product', object_id=5,
                               changes={'price': '10.00'})
        self.assertEqual(log.object_id, '5')
        self.assertEqual(log.user, self.admin)

    def test_list_filtered_by_action(self):
        create_audit_log(user=self.admin, action='create', model_name='Product', object_id=1)
        create_audit_log(user=self.admin, action='order_place', model_name='Order', object_id=2,
                         object_reference='ORD-1')
        client = AuthenticatedAPIClient().authenticate_user(self.admin)
        response = client.get('/api/v1/audit-logs/?reference=ORD-1')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['count'], 1)
        self.assertEqual(response.data['data']['results'][0]['action'], 'order_place')


class ErrorEnvelopeTests(TestCase):
    """Test error payload helpers"""

    def test_error_payload_omits_empty_details(self):
        self.assertEqual(error_payload('CART_EMPTY', 'Cart is empty'),
                         {'success': False, 'error': {'code': 'CART_EMPTY', 'message': 'Cart is empty'}})

    def test_validation_details_flatten_nested(self):
        exc = ValidationError({'delivery_address': {'pincode': ['Pincode must be 6 digits']}, 'quantity': ['Bad']})
        rows = _validation_details(exc.detail)
        self.assertIn({'field': 'delivery_address.pincode', 'message': 'Pincode must be 6 digits'}, rows)
        self.assertIn({'field': 'quantity', 'message': 'Bad'}, rows)


class CacheUtilsTests(TestCase):
    """Test cached_query and pattern invalidation on the local-memory cache"""

    def setUp(self):
        cache.clear()

    def test_cached_query_and_invalidate(self):
        calls = []

        @cached_query(cache_ttl=60, key_prefix='unit_test_prefix')
        def expensive():
            calls.append(1)
            return {'value': len(calls)}

        self.assertEqual(expensive(), {'value': 1})
        self.assertEqual(expensive(), {'value': 1})
        self.assertEqual(len(calls), 1)

        invalidate_cache_pattern('unit_test_prefix')
        self.assertEqual(expensive(), {'value': 2})
