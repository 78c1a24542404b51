"""
Test suite for the reports module
Tests: farmer analytics, platform analytics and its cache invalidation
"""
from django.core.cache import cache
from django.test import TestCase
from rest_framework import status
from decimal import Decimal
from marketplace.core.test_utils import TestDataFactory, AuthenticatedAPIClient


class FarmerAnalyticsTests(TestCase):
    """Test the farmer dashboard"""

    def setUp(self):
        self.farmer = TestDataFactory.create_farmer()
        self.client = AuthenticatedAPIClient().authenticate_user(self.farmer)
        self.customer = TestDataFactory.create_customer()
        self.wheat = TestDataFactory.create_product(farmer=self.farmer, price=Decimal('60.00'), stock=20)
        TestDataFactory.create_product(farmer=self.farmer, is_approved=False)

    def test_empty_dashboard(self):
        farmer = TestDataFactory.create_farmer()
        self.client.authenticate_user(farmer)
        response = self.client.get('/api/v1/farmer/analytics/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['total_orders'], 0)
        self.assertEqual(response.data['data']['total_earnings'], '0.00')

    def test_counts_and_earnings(self):
        other_product = TestDataFactory.create_product(price=Decimal('500.00'))
        delivered = TestDataFactory.create_order(self.customer, [(self.wheat, 2), (other_product, 1)])
        TestDataFactory.mark_delivered(delivered)
        TestDataFactory.create_order(self.customer, [(self.wheat, 1)])

        response = self.client.get('/api/v1/farmer/analytics/')
        data = response.data['data']
        self.assertEqual(data['total_products'], 2)
        self.assertEqual(data['approved_products'], 1)
        self.assertEqual(data['total_orders'], 2)
        self.assertEqual(data['pending_orders'], 1)
        # Only the farmer's own line on the delivered order counts
        self.assertEqual(Decimal(data['total_earnings']), Decimal('120.00'))
        self.assertEqual(data['top_products'][0]['quantity'], 3)

    def test_customer_forbidden(self):
        self.client.authenticate_user(self.customer)
        response = self.client.get('/api/v1/farmer/analytics/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class PlatformAnalyticsTests(TestCase):
    """Test the admin dashboard"""

    def setUp(self):
        cache.clear()
        self.admin = TestDataFactory.create_admin()
        self.client = AuthenticatedAPIClient().authenticate_user(self.admin)
        self.customer = TestDataFactory.create_customer()
        self.product = TestDataFactory.create_product(price=Decimal('100.00'), stock=10)

    def test_summary(self):
        order = TestDataFactory.create_order(self.customer, [(self.product, 2)])
        TestDataFactory.mark_delivered(order)

        response = self.client.get('/api/v1/admin/analytics/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data['data']
        self.assertEqual(data['users']['customers'], 1)
        self.assertEqual(data['users']['farmers'], 1)
        self.assertEqual(data['products']['approved'], 1)
        self.assertEqual(data['orders']['delivered'], 1)
        self.assertEqual(data['orders']['last_7_days'], 1)
        self.assertEqual(Decimal(data['revenue']), order.total)

    def test_order_placement_invalidates_cache(self):
        response = self.client.get('/api/v1/admin/analytics/')
        self.assertEqual(response.data['data']['orders']['total'], 0)

        TestDataFactory.add_to_cart(self.customer, self.product, 1)
        customer_client = AuthenticatedAPIClient().authenticate_user(self.customer)
        customer_client.post('/api/v1/customer/orders/', {'delivery_address': TestDataFactory.delivery_address()},
                             format='json')

        response = self.client.get('/api/v1/admin/analytics/')
        self.assertEqual(response.data['data']['orders']['total'], 1)

    def test_farmer_forbidden(self):
        self.client.authenticate_user(TestDataFactory.create_farmer())
        response = self.client.get('/api/v1/admin/analytics/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
