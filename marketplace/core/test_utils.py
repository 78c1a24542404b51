"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from marketplace.catalog.models import Product
from marketplace.orders.models import CartItem
from marketplace.orders.services.cart import get_or_create_cart
from marketplace.orders.services.placement import place_order
from decimal import Decimal
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', role=User.ROLE_CUSTOMER,
                    is_superuser=False, is_active=True):
        """Create a test user"""
        if not username:
            username = f'{role}_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        return User.objects.create_user(
            username=username,
            email=email,
            password=password,
            role=role,
            is_superuser=is_superuser,
            is_staff=is_superuser,
            is_active=is_active,
        )

    @staticmethod
    def create_customer(**kwargs):
        return TestDataFactory.create_user(role=User.ROLE_CUSTOMER, **kwargs)

    @staticmethod
    def create_farmer(**kwargs):
        return TestDataFactory.create_user(role=User.ROLE_FARMER, **kwargs)

    @staticmethod
    def create_admin(**kwargs):
        return TestDataFactory.create_user(role=User.ROLE_ADMIN, **kwargs)

    @staticmethod
    def create_product(farmer=None, name=None, price=None, stock=10, category='vegetables', unit='kg',
                       is_available=True, is_approved=True, is_organic=False):
        """Create a test product (approved and listed unless told otherwise)"""
        if not farmer:
            farmer = TestDataFactory.create_farmer()
        if not name:
            name = f'Product_{TestDataFactory.random_string(6)}'
        if price is None:
            price = Decimal('100.00')
        return Product.objects.create(
            farmer=farmer,
            name=name,
            description=f'Fresh {name} from the farm',
            price=price,
            category=category,
            unit=unit,
            stock=stock,
            is_available=is_available,
            is_approved=is_approved,
            is_organic=is_organic,
        )

    @staticmethod
    def add_to_cart(customer, product, quantity=1):
        """Put a line straight into the customer's cart, bypassing stock checks"""
        cart = get_or_create_cart(customer)
        return CartItem.objects.create(cart=cart, product=product, quantity=quantity, price=product.price)

    @staticmethod
    def delivery_address(**overrides):
        """A valid delivery address payload"""
        address = {
            'name': 'Asha Rao',
            'phone': '9876543210',
            'street': '12 Market Road, Ward 4',
            'city': 'Pune',
            'state': 'Maharashtra',
            'pincode': '411001',
        }
        address.update(overrides)
        return address

    @staticmethod
    def create_order(customer, products_with_quantities, **kwargs):
        """Fill the cart and place an order through the real placement transaction"""
        for product, quantity in products_with_quantities:
            TestDataFactory.add_to_cart(customer, product, quantity)
        return place_order(customer, TestDataFactory.delivery_address(), **kwargs)

    @staticmethod
    def mark_delivered(order, delivered_at=None):
        """Force an order into delivered state without walking the state machine"""
        order.status = order.STATUS_DELIVERED
        order.delivered_at = delivered_at or timezone.now()
        order.save(update_fields=['status', 'delivered_at'])
        return order


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
