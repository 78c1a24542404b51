"""
Test suite for the catalog module
Tests: public listing and filters, farmer product management, admin approval, category summary
"""
from django.core.cache import cache
from django.test import TestCase
from rest_framework import status
from decimal import Decimal
from marketplace.catalog.models import Product
from marketplace.core.models import AuditLog
from marketplace.core.test_utils import TestDataFactory, AuthenticatedAPIClient


class PublicCatalogTests(TestCase):
    """Test the public product listing"""

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        self.farmer = TestDataFactory.create_farmer()
        self.spinach = TestDataFactory.create_product(farmer=self.farmer, name='Spinach', price=Decimal('30.00'),
                                                      is_organic=True)
        self.mango = TestDataFactory.create_product(name='Alphonso Mango', price=Decimal('400.00'),
                                                    category='fruits', unit='dozen', stock=0)
        self.hidden = TestDataFactory.create_product(name='Hidden Basil', category='herbs', is_approved=False)

    def test_list_shows_only_listed_products(self):
        response = self.client.get('/api/v1/products/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        names = {row['name'] for row in response.data['data']['results']}
        self.assertEqual(names, {'Spinach', 'Alphonso Mango'})

    def test_filters(self):
        cases = [
            ('category=fruits', {'Alphonso Mango'}),
            ('organic=true', {'Spinach'}),
            (f'farmer={self.farmer.id}', {'Spinach'}),
            ('min_price=100', {'Alphonso Mango'}),
            ('max_price=100', {'Spinach'}),
            ('search=mango', {'Alphonso Mango'}),
            ('in_stock=true', {'Spinach'}),
        ]
        for query, expected in cases:
            response = self.client.get(f'/api/v1/products/?{query}')
            self.assertEqual(response.status_code, status.HTTP_200_OK, query)
            self.assertEqual({row['name'] for row in response.data['data']['results']}, expected, query)

    def test_ordering_by_price(self):
        response = self.client.get('/api/v1/products/?ordering=-price')
        self.assertEqual([row['name'] for row in response.data['data']['results']], ['Alphonso Mango', 'Spinach'])

    def test_invalid_filter_value(self):
        response = self.client.get('/api/v1/products/?category=rocks')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'VALIDATION_ERROR')

    def test_pagination(self):
        for _ in range(3):
            TestDataFactory.create_product()
        response = self.client.get('/api/v1/products/?limit=2&page=2')
        data = response.data['data']
        self.assertEqual(data['count'], 5)
        self.assertEqual(data['page'], 2)
        self.assertEqual(data['total_pages'], 3)
        self.assertEqual(len(data['results']), 2)

    def test_detail_hides_unapproved_product(self):
        response = self.client.get(f'/api/v1/products/{self.hidden.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error']['code'], 'PRODUCT_NOT_FOUND')

        self.client.authenticate_user(self.hidden.farmer)
        response = self.client.get(f'/api/v1/products/{self.hidden.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_category_summary(self):
        response = self.client.get('/api/v1/products/categories/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        counts = {row['category']: row['count'] for row in response.data['data']}
        self.assertEqual(counts, {'vegetables': 1, 'fruits': 1})


class FarmerProductTests(TestCase):
    """Test farmer product management"""

    def setUp(self):
        cache.clear()
        self.farmer = TestDataFactory.create_farmer()
        self.client = AuthenticatedAPIClient().authenticate_user(self.farmer)

    def test_create_starts_unapproved(self):
        response = self.client.post('/api/v1/farmer/products/', {
            'name': 'Red Onion',
            'description': 'Nashik onions',
            'price': '35.00',
            'category': 'vegetables',
            'unit': 'kg',
            'stock': 40,
            'is_approved': True,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        product = Product.objects.get(pk=response.data['data']['id'])
        self.assertFalse(product.is_approved)
        self.assertEqual(product.farmer, self.farmer)
        self.assertTrue(AuditLog.objects.filter(action='create', model_name='Product').exists())

    def test_create_rejects_negative_price(self):
        response = self.client.post('/api/v1/farmer/products/', {
            'name': 'Red Onion', 'description': 'x', 'price': '-1.00', 'category': 'vegetables', 'unit': 'kg',
            'stock': 1,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_update_own_product(self):
        product = TestDataFactory.create_product(farmer=self.farmer, stock=5)
        response = self.client.patch(f'/api/v1/farmer/products/{product.id}/', {'stock': 25}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        product.refresh_from_db()
        self.assertEqual(product.stock, 25)

    def test_cannot_touch_other_farmers_product(self):
        product = TestDataFactory.create_product()
        response = self.client.patch(f'/api/v1/farmer/products/{product.id}/', {'stock': 0}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        response = self.client.delete(f'/api/v1/farmer/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertTrue(Product.objects.filter(pk=product.pk).exists())

    def test_list_only_own(self):
        TestDataFactory.create_product(farmer=self.farmer, is_approved=False)
        TestDataFactory.create_product()
        response = self.client.get('/api/v1/farmer/products/')
        self.assertEqual(response.data['data']['count'], 1)

    def test_customer_cannot_create(self):
        self.client.authenticate_user(TestDataFactory.create_customer())
        response = self.client.post('/api/v1/farmer/products/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class AdminProductTests(TestCase):
    """Test admin moderation"""

    def setUp(self):
        cache.clear()
        self.admin = TestDataFactory.create_admin()
        self.client = AuthenticatedAPIClient().authenticate_user(self.admin)

    def test_pending_list_and_approve(self):
        product = TestDataFactory.create_product(is_approved=False)
        TestDataFactory.create_product()

        response = self.client.get('/api/v1/admin/products/?approved=false')
        self.assertEqual(response.data['data']['count'], 1)

        response = self.client.put(f'/api/v1/admin/products/{product.id}/approve/', {'is_approved': True},
                                   format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        product.refresh_from_db()
        self.assertTrue(product.is_approved)
        self.assertTrue(AuditLog.objects.filter(action='product_approve', object_id=str(product.id)).exists())

    def test_approval_refreshes_category_summary(self):
        product = TestDataFactory.create_product(category='dairy', is_approved=False)
        public = AuthenticatedAPIClient()
        response = public.get('/api/v1/products/categories/')
        self.assertNotIn('dairy', {row['category'] for row in response.data['data']})

        self.client.put(f'/api/v1/admin/products/{product.id}/approve/', {}, format='json')
        response = public.get('/api/v1/products/categories/')
        self.assertIn('dairy', {row['category'] for row in response.data['data']})

    def test_delete_any_product(self):
        product = TestDataFactory.create_product(name='Stale Okra', category='dairy', stock=5)
        order = TestDataFactory.create_order(TestDataFactory.create_customer(), [(product, 1)])
        public = AuthenticatedAPIClient()
        self.assertIn('dairy', {row['category'] for row in public.get('/api/v1/products/categories/').data['data']})

        response = self.client.delete(f'/api/v1/admin/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['data']['deleted'])
        self.assertFalse(Product.objects.filter(pk=product.pk).exists())
        self.assertTrue(AuditLog.objects.filter(action='delete', model_name='Product',
                                                object_id=str(product.id)).exists())

        # Order lines keep their snapshot after the product is gone
        line = order.items.get()
        self.assertIsNone(line.product_id)
        self.assertEqual(line.product_name, 'Stale Okra')
        self.assertNotIn('dairy', {row['category'] for row in public.get('/api/v1/products/categories/').data['data']})

    def test_delete_unknown_product(self):
        response = self.client.delete('/api/v1/admin/products/999999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error']['code'], 'PRODUCT_NOT_FOUND')

    def test_farmer_cannot_use_admin_delete(self):
        product = TestDataFactory.create_product()
        self.client.authenticate_user(product.farmer)
        response = self.client.delete(f'/api/v1/admin/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertTrue(Product.objects.filter(pk=product.pk).exists())
