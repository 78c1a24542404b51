"""
Test suite for the orders module
Tests: cart operations, order placement transaction, status state machine, and the order API
"""
import threading
from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.db import connection
from django.test import TestCase, TransactionTestCase, override_settings
from django.utils import timezone
from rest_framework import status

from marketplace.catalog.models import Product
from marketplace.core.exceptions import (
    BankDetailsRequired, CannotCancel, CartEmpty, CartItemNotFound, InsufficientStock, InvalidTransition,
    NotPermitted, OrderNotFound, ProductNotFound, ProductUnavailable, ReturnWindowExpired, ValidationFailed,
)
from marketplace.core.models import AuditLog, User
from marketplace.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from marketplace.orders import state_machine
from marketplace.orders.models import Cart, CartItem, Order, OrderStatusHistory
from marketplace.orders.services import cart as cart_service
from marketplace.orders.services import placement
from marketplace.orders.services.placement import compute_totals, place_order


class CartServiceTests(TestCase):
    """Test cart mutation operations"""

    def setUp(self):
        self.customer = TestDataFactory.create_customer()
        self.product = TestDataFactory.create_product(price=Decimal('40.00'), stock=5)

    def test_add_creates_line_with_price_snapshot(self):
        cart = cart_service.add_item(self.customer, self.product.id, 2)
        item = cart.items.get()
        self.assertEqual(item.quantity, 2)
        self.assertEqual(item.price, Decimal('40.00'))

    def test_add_same_product_merges_quantity(self):
        cart_service.add_item(self.customer, self.product.id, 2)
        cart = cart_service.add_item(self.customer, self.product.id, 1)
        self.assertEqual(cart.items.count(), 1)
        self.assertEqual(cart.items.get().quantity, 3)

    def test_add_missing_product(self):
        with self.assertRaises(ProductNotFound):
            cart_service.add_item(self.customer, 999999, 1)

    def test_add_unavailable_or_unapproved_product(self):
        hidden = TestDataFactory.create_product(is_available=False)
        pending = TestDataFactory.create_product(is_approved=False)
        for product in (hidden, pending):
            with self.assertRaises(ProductUnavailable):
                cart_service.add_item(self.customer, product.id, 1)
        self.assertFalse(CartItem.objects.exists())

    def test_add_more_than_stock(self):
        with self.assertRaises(InsufficientStock):
            cart_service.add_item(self.customer, self.product.id, 6)

    def test_add_zero_quantity_rejected(self):
        with self.assertRaises(ValidationFailed):
            cart_service.add_item(self.customer, self.product.id, 0)

    def test_update_quantity_replaces(self):
        item = TestDataFactory.add_to_cart(self.customer, self.product, 1)
        cart_service.update_item_quantity(self.customer, item.id, 4)
        item.refresh_from_db()
        self.assertEqual(item.quantity, 4)

    def test_update_quantity_zero_removes_line(self):
        item = TestDataFactory.add_to_cart(self.customer, self.product, 1)
        cart = cart_service.update_item_quantity(self.customer, item.id, 0)
        self.assertFalse(cart.items.exists())
        self.assertTrue(Cart.objects.filter(customer=self.customer).exists())

    def test_update_quantity_above_stock(self):
        item = TestDataFactory.add_to_cart(self.customer, self.product, 1)
        with self.assertRaises(InsufficientStock):
            cart_service.update_item_quantity(self.customer, item.id, 50)
        item.refresh_from_db()
        self.assertEqual(item.quantity, 1)

    def test_remove_item_of_other_customer(self):
        other = TestDataFactory.create_customer()
        item = TestDataFactory.add_to_cart(other, self.product, 1)
        with self.assertRaises(CartItemNotFound):
            cart_service.remove_item(self.customer, item.id)
        self.assertTrue(CartItem.objects.filter(pk=item.pk).exists())

    def test_clear_keeps_cart(self):
        TestDataFactory.add_to_cart(self.customer, self.product, 2)
        TestDataFactory.add_to_cart(self.customer, TestDataFactory.create_product(), 1)
        cart = cart_service.clear_cart(self.customer)
        self.assertEqual(cart.items.count(), 0)
        self.assertTrue(Cart.objects.filter(pk=cart.pk).exists())

    def test_cart_totals(self):
        TestDataFactory.add_to_cart(self.customer, self.product, 2)
        TestDataFactory.add_to_cart(self.customer, TestDataFactory.create_product(price=Decimal('15.50')), 3)
        totals = cart_service.cart_totals(self.customer.cart)
        self.assertEqual(totals['total_items'], 5)
        self.assertEqual(totals['total'], Decimal('126.50'))

    def test_cart_totals_empty(self):
        cart = cart_service.get_or_create_cart(self.customer)
        self.assertEqual(cart_service.cart_totals(cart), {'total_items': 0, 'total': Decimal('0.00')})


class PlacementTests(TestCase):
    """Test the cart to order transaction"""

    def setUp(self):
        self.customer = TestDataFactory.create_customer()
        self.farmer = TestDataFactory.create_farmer()
        self.tomatoes = TestDataFactory.create_product(farmer=self.farmer, price=Decimal('100.00'), stock=10)
        self.honey = TestDataFactory.create_product(price=Decimal('50.00'), stock=3)

    def test_totals_and_side_effects(self):
        TestDataFactory.add_to_cart(self.customer, self.tomatoes, 2)
        TestDataFactory.add_to_cart(self.customer, self.honey, 1)

        order = place_order(self.customer, TestDataFactory.delivery_address(), payment_method='upi')

        self.assertEqual(order.subtotal, Decimal('250.00'))
        self.assertEqual(order.delivery_charges, Decimal('50.00'))
        self.assertEqual(order.taxes, Decimal('12.50'))
        self.assertEqual(order.total, Decimal('312.50'))
        self.assertEqual(order.status, Order.STATUS_PENDING)
        self.assertTrue(order.order_number.startswith('ORD-'))

        self.tomatoes.refresh_from_db()
        self.honey.refresh_from_db()
        self.assertEqual(self.tomatoes.stock, 8)
        self.assertEqual(self.honey.stock, 2)

        cart = Cart.objects.get(customer=self.customer)
        self.assertEqual(cart.items.count(), 0)

        history = list(order.status_history.all())
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0].status, Order.STATUS_PENDING)
        self.assertEqual(history[0].note, 'Order placed')

    def test_items_are_snapshots(self):
        TestDataFactory.add_to_cart(self.customer, self.tomatoes, 2)
        order = place_order(self.customer, TestDataFactory.delivery_address())

        self.tomatoes.name = 'Renamed'
        self.tomatoes.price = Decimal('999.00')
        self.tomatoes.save()

        item = order.items.get()
        self.assertEqual(item.price, Decimal('100.00'))
        self.assertEqual(item.subtotal, Decimal('200.00'))
        self.assertEqual(item.farmer, self.farmer)
        self.assertNotEqual(item.product_name, 'Renamed')

    def test_uses_live_price_not_cart_snapshot(self):
        TestDataFactory.add_to_cart(self.customer, self.tomatoes, 1)
        Product.objects.filter(pk=self.tomatoes.pk).update(price=Decimal('120.00'))
        order = place_order(self.customer, TestDataFactory.delivery_address())
        self.assertEqual(order.subtotal, Decimal('120.00'))

    def test_delivery_address_stored(self):
        TestDataFactory.add_to_cart(self.customer, self.tomatoes, 1)
        address = TestDataFactory.delivery_address(landmark='Near temple', coordinates=[73.85, 18.52])
        order = place_order(self.customer, address)
        self.assertEqual(order.delivery_address['pincode'], '411001')
        self.assertEqual(order.delivery_address['landmark'], 'Near temple')
        self.assertEqual(order.delivery_address['coordinates'], [73.85, 18.52])

    def test_empty_cart(self):
        with self.assertRaises(CartEmpty):
            place_order(self.customer, TestDataFactory.delivery_address())
        cart_service.get_or_create_cart(self.customer)
        with self.assertRaises(CartEmpty):
            place_order(self.customer, TestDataFactory.delivery_address())

    def test_unavailable_product_leaves_nothing_behind(self):
        TestDataFactory.add_to_cart(self.customer, self.tomatoes, 1)
        TestDataFactory.add_to_cart(self.customer, self.honey, 1)
        Product.objects.filter(pk=self.honey.pk).update(is_available=False)

        with self.assertRaises(ProductUnavailable) as ctx:
            place_order(self.customer, TestDataFactory.delivery_address())

        self.assertEqual(ctx.exception.details['product_id'], self.honey.id)
        self.assertFalse(Order.objects.exists())
        self.tomatoes.refresh_from_db()
        self.assertEqual(self.tomatoes.stock, 10)
        self.assertEqual(self.customer.cart.items.count(), 2)

    def test_insufficient_stock_names_product(self):
        TestDataFactory.add_to_cart(self.customer, self.tomatoes, 1)
        TestDataFactory.add_to_cart(self.customer, self.honey, 5)

        with self.assertRaises(InsufficientStock) as ctx:
            place_order(self.customer, TestDataFactory.delivery_address())

        self.assertEqual(ctx.exception.details['available'], 3)
        self.assertIn(self.honey.name, ctx.exception.message)
        self.assertFalse(Order.objects.exists())
        self.tomatoes.refresh_from_db()
        self.assertEqual(self.tomatoes.stock, 10)

    def test_failed_stock_reservation_rolls_back(self):
        TestDataFactory.add_to_cart(self.customer, self.tomatoes, 2)
        TestDataFactory.add_to_cart(self.customer, self.honey, 1)

        with mock.patch('marketplace.orders.services.placement.reserve_stock', side_effect=[True, False]):
            with self.assertRaises(InsufficientStock):
                place_order(self.customer, TestDataFactory.delivery_address())

        self.assertFalse(Order.objects.exists())
        self.assertFalse(OrderStatusHistory.objects.exists())
        self.assertEqual(self.customer.cart.items.count(), 2)

    def test_stock_taken_after_validation_rolls_back(self):
        TestDataFactory.add_to_cart(self.customer, self.tomatoes, 2)
        TestDataFactory.add_to_cart(self.customer, self.honey, 1)
        validate = placement._validate_lines

        def validate_then_sell_out(lines):
            validate(lines)
            Product.objects.filter(pk=self.honey.pk).update(stock=0)

        with mock.patch('marketplace.orders.services.placement._validate_lines', side_effect=validate_then_sell_out):
            with self.assertRaises(InsufficientStock) as ctx:
                place_order(self.customer, TestDataFactory.delivery_address())

        self.assertEqual(ctx.exception.details['product_id'], self.honey.id)
        self.assertEqual(ctx.exception.details['available'], 0)
        self.assertFalse(Order.objects.exists())
        self.assertFalse(OrderStatusHistory.objects.exists())
        self.assertEqual(self.customer.cart.items.count(), 2)
        self.honey.refresh_from_db()
        self.assertEqual(self.honey.stock, 3)
        self.tomatoes.refresh_from_db()
        self.assertEqual(self.tomatoes.stock, 10)

    def test_last_unit_goes_to_one_customer(self):
        product = TestDataFactory.create_product(stock=1)
        first = TestDataFactory.create_customer()
        second = TestDataFactory.create_customer()
        TestDataFactory.add_to_cart(first, product, 1)
        TestDataFactory.add_to_cart(second, product, 1)

        place_order(first, TestDataFactory.delivery_address())
        with self.assertRaises(InsufficientStock):
            place_order(second, TestDataFactory.delivery_address())

        product.refresh_from_db()
        self.assertEqual(product.stock, 0)
        self.assertEqual(Order.objects.count(), 1)
        self.assertEqual(second.cart.items.count(), 1)

    def test_order_numbers_are_unique(self):
        numbers = set()
        for _ in range(3):
            TestDataFactory.add_to_cart(self.customer, self.tomatoes, 1)
            numbers.add(place_order(self.customer, TestDataFactory.delivery_address()).order_number)
        self.assertEqual(len(numbers), 3)


class ComputeTotalsTests(TestCase):
    """Test money arithmetic"""

    def test_tax_rounds_half_up(self):
        totals = compute_totals(Decimal('0.10'))
        self.assertEqual(totals.taxes, Decimal('0.01'))
        self.assertEqual(totals.total, Decimal('50.11'))

    @override_settings(MARKETPLACE={'DELIVERY_CHARGE': '30.00', 'TAX_RATE': '0.18', 'RETURN_WINDOW_DAYS': 7,
                                    'DEFAULT_PAGE_SIZE': 20, 'MAX_PAGE_SIZE': 100})
    def test_configured_rates(self):
        totals = compute_totals(Decimal('100.00'))
        self.assertEqual(totals.delivery_charges, Decimal('30.00'))
        self.assertEqual(totals.taxes, Decimal('18.00'))
        self.assertEqual(totals.total, Decimal('148.00'))


class ConcurrentPlacementTests(TransactionTestCase):
    """Two customers racing for the last unit from separate connections"""

    def setUp(self):
        if connection.vendor == 'sqlite' and connection.is_in_memory_db():
            self.skipTest('In-memory SQLite shares one cache between threads')

    def test_only_one_order_wins(self):
        product = TestDataFactory.create_product(stock=1)
        customers = [TestDataFactory.create_customer() for _ in range(2)]
        for customer in customers:
            TestDataFactory.add_to_cart(customer, product, 1)

        barrier = threading.Barrier(len(customers))
        results = []

        def attempt(customer):
            try:
                barrier.wait(timeout=5)
                place_order(customer, TestDataFactory.delivery_address())
                results.append('ok')
            except InsufficientStock:
                results.append('insufficient')
            except Exception as exc:
                results.append(type(exc).__name__)
            finally:
                connection.close()

        threads = [threading.Thread(target=attempt, args=(customer,)) for customer in customers]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(sorted(results), ['insufficient', 'ok'])
        product.refresh_from_db()
        self.assertEqual(product.stock, 0)
        self.assertEqual(Order.objects.count(), 1)


class StateMachineTests(TestCase):
    """Test order status transitions, actors and side effects"""

    def setUp(self):
        self.customer = TestDataFactory.create_customer()
        self.farmer = TestDataFactory.create_farmer()
        self.admin = TestDataFactory.create_admin()
        self.product = TestDataFactory.create_product(farmer=self.farmer, price=Decimal('100.00'), stock=10)
        self.order = TestDataFactory.create_order(self.customer, [(self.product, 3)])

    def _stock(self):
        self.product.refresh_from_db()
        return self.product.stock

    def _advance_to(self, target):
        for step in (Order.STATUS_ACCEPTED, Order.STATUS_PROCESSING, Order.STATUS_SHIPPED, Order.STATUS_DELIVERED):
            state_machine.transition(self.order.id, step, self.farmer)
            if step == target:
                break
        self.order.refresh_from_db()

    def test_allowed_targets(self):
        self.assertEqual(state_machine.allowed_targets(User.ROLE_CUSTOMER),
                         {Order.STATUS_CANCELLED, Order.STATUS_RETURN_REQUESTED})
        self.assertNotIn(Order.STATUS_REJECTED, state_machine.allowed_targets(User.ROLE_FARMER))
        self.assertIn(Order.STATUS_RESOLVED, state_machine.allowed_targets(User.ROLE_ADMIN))
        self.assertEqual(state_machine.allowed_targets('unknown'), set())

    def test_cancel_restores_stock(self):
        self.assertEqual(self._stock(), 7)
        order = state_machine.cancel_order(self.order.id, self.customer, reason='Ordered by mistake')
        self.assertEqual(order.status, Order.STATUS_CANCELLED)
        self.assertEqual(order.cancellation_reason, 'Ordered by mistake')
        self.assertEqual(self._stock(), 10)
        self.assertEqual(order.status_history.last().status, Order.STATUS_CANCELLED)

    def test_transition_reports_previous_status(self):
        order = state_machine.transition(self.order.id, Order.STATUS_ACCEPTED, self.farmer)
        self.assertEqual(order.previous_status, Order.STATUS_PENDING)
        order = state_machine.cancel_order(self.order.id, self.customer, reason='Changed my mind')
        self.assertEqual(order.previous_status, Order.STATUS_ACCEPTED)

    def test_cancel_accepted_order(self):
        state_machine.transition(self.order.id, Order.STATUS_ACCEPTED, self.farmer)
        state_machine.cancel_order(self.order.id, self.customer, reason='Changed my mind')
        self.assertEqual(self._stock(), 10)

    def test_cancel_paid_order_refunds(self):
        Order.objects.filter(pk=self.order.pk).update(payment_status='paid')
        order = state_machine.cancel_order(self.order.id, self.customer, reason='No longer needed')
        self.assertEqual(order.payment_status, 'refunded')
        self.assertEqual(order.refund_amount, order.total)

    def test_cancel_after_shipping_fails(self):
        self._advance_to(Order.STATUS_SHIPPED)
        with self.assertRaises(CannotCancel):
            state_machine.cancel_order(self.order.id, self.customer, reason='Too slow')
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_SHIPPED)
        self.assertEqual(self._stock(), 7)

    def test_cancel_twice_fails(self):
        state_machine.cancel_order(self.order.id, self.customer, reason='First time')
        with self.assertRaises(CannotCancel):
            state_machine.cancel_order(self.order.id, self.customer, reason='Second time')
        self.assertEqual(self._stock(), 10)

    def test_other_customer_cannot_cancel(self):
        stranger = TestDataFactory.create_customer()
        with self.assertRaises(NotPermitted):
            state_machine.cancel_order(self.order.id, stranger, reason='Not mine')

    def test_farmer_fulfilment_flow(self):
        self._advance_to(Order.STATUS_DELIVERED)
        self.assertEqual(self.order.status, Order.STATUS_DELIVERED)
        self.assertIsNotNone(self.order.delivered_at)
        statuses = list(self.order.status_history.values_list('status', flat=True))
        self.assertEqual(statuses, ['pending', 'accepted', 'processing', 'shipped', 'delivered'])

    def test_shipping_details_recorded(self):
        self._advance_to(Order.STATUS_PROCESSING)
        order = state_machine.transition(self.order.id, Order.STATUS_SHIPPED, self.farmer,
                                         tracking_id='TRK123', delivery_partner='Dunzo')
        self.assertEqual(order.tracking_id, 'TRK123')
        self.assertEqual(order.delivery_partner, 'Dunzo')

    def test_farmer_without_items_cannot_update(self):
        other_farmer = TestDataFactory.create_farmer()
        with self.assertRaises(NotPermitted):
            state_machine.transition(self.order.id, Order.STATUS_ACCEPTED, other_farmer)

    def test_farmer_cannot_reject(self):
        with self.assertRaises(NotPermitted):
            state_machine.transition(self.order.id, Order.STATUS_REJECTED, self.farmer)

    def test_customer_cannot_accept(self):
        with self.assertRaises(NotPermitted):
            state_machine.transition(self.order.id, Order.STATUS_ACCEPTED, self.customer)

    def test_skipping_states_is_invalid(self):
        with self.assertRaises(InvalidTransition):
            state_machine.transition(self.order.id, Order.STATUS_SHIPPED, self.admin)

    def test_unknown_order(self):
        with self.assertRaises(OrderNotFound):
            state_machine.transition(999999, Order.STATUS_ACCEPTED, self.admin)

    def test_admin_reject_keeps_stock(self):
        order = state_machine.transition(self.order.id, Order.STATUS_REJECTED, self.admin, note='Out of season')
        self.assertEqual(order.status, Order.STATUS_REJECTED)
        self.assertEqual(self._stock(), 7)
        with self.assertRaises(InvalidTransition):
            state_machine.transition(self.order.id, Order.STATUS_ACCEPTED, self.admin)

    def test_return_window_is_inclusive(self):
        delivered_at = timezone.now() - timedelta(days=3)
        TestDataFactory.mark_delivered(self.order, delivered_at)
        self.assertTrue(state_machine.is_return_eligible(self.order, now=delivered_at + timedelta(days=7)))
        self.assertFalse(state_machine.is_return_eligible(
            self.order, now=delivered_at + timedelta(days=7, seconds=1)))

    def test_return_within_window(self):
        TestDataFactory.mark_delivered(self.order, timezone.now() - timedelta(days=6))
        order = state_machine.request_return(self.order.id, self.customer, reason='Produce was spoiled')
        self.assertEqual(order.status, Order.STATUS_RETURN_REQUESTED)
        self.assertEqual(order.return_reason, 'Produce was spoiled')
        self.assertEqual(order.refund_method, 'original')

    def test_return_after_window(self):
        TestDataFactory.mark_delivered(self.order, timezone.now() - timedelta(days=8))
        with self.assertRaises(ReturnWindowExpired):
            state_machine.request_return(self.order.id, self.customer, reason='Produce was spoiled')
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_DELIVERED)

    def test_return_before_delivery(self):
        with self.assertRaises(InvalidTransition):
            state_machine.request_return(self.order.id, self.customer, reason='Produce was spoiled')

    def test_bank_refund_needs_bank_details(self):
        TestDataFactory.mark_delivered(self.order)
        with self.assertRaises(BankDetailsRequired):
            state_machine.request_return(self.order.id, self.customer, reason='Produce was spoiled',
                                         refund_method='bank')

    def test_resolve_bank_refund_without_details(self):
        Order.objects.filter(pk=self.order.pk).update(status=Order.STATUS_RETURN_REQUESTED, refund_method='bank')
        with self.assertRaises(BankDetailsRequired):
            state_machine.resolve_return(self.order.id, self.admin)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_RETURN_REQUESTED)

    def test_resolve_approved_refunds_and_restocks(self):
        TestDataFactory.mark_delivered(self.order)
        state_machine.request_return(
            self.order.id, self.customer, reason='Produce was spoiled', refund_method='bank',
            bank_details={'account_number': '123456789012', 'ifsc_code': 'SBIN0001234',
                          'account_holder_name': 'Asha Rao'},
        )
        order = state_machine.resolve_return(self.order.id, self.admin)
        self.assertEqual(order.status, Order.STATUS_RESOLVED)
        self.assertEqual(order.refund_amount, order.total)
        self.assertEqual(order.payment_status, 'refunded')
        self.assertEqual(self._stock(), 10)

    def test_resolve_partial_refund(self):
        TestDataFactory.mark_delivered(self.order)
        state_machine.request_return(self.order.id, self.customer, reason='One item was bruised')
        order = state_machine.resolve_return(self.order.id, self.admin, refund_amount=Decimal('40.00'))
        self.assertEqual(order.refund_amount, Decimal('40.00'))

    def test_resolve_declined(self):
        TestDataFactory.mark_delivered(self.order)
        state_machine.request_return(self.order.id, self.customer, reason='Produce was spoiled')
        order = state_machine.resolve_return(self.order.id, self.admin, approved=False)
        self.assertEqual(order.status, Order.STATUS_RESOLVED)
        self.assertEqual(order.refund_amount, Decimal('0.00'))
        self.assertEqual(self._stock(), 7)

    def test_farmer_cannot_resolve(self):
        Order.objects.filter(pk=self.order.pk).update(status=Order.STATUS_RETURN_REQUESTED)
        with self.assertRaises(NotPermitted):
            state_machine.resolve_return(self.order.id, self.farmer)


class CartAPITests(TestCase):
    """Test customer cart endpoints"""

    def setUp(self):
        self.customer = TestDataFactory.create_customer()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.customer)
        self.product = TestDataFactory.create_product(price=Decimal('25.00'), stock=4)

    def test_get_empty_cart(self):
        response = self.client.get('/api/v1/customer/cart/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['data']['items'], [])
        self.assertEqual(response.data['data']['total'], '0.00')

    def test_add_update_remove(self):
        response = self.client.post('/api/v1/customer/cart/', {'product_id': self.product.id, 'quantity': 2},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['total'], '50.00')
        item_id = response.data['data']['items'][0]['id']

        response = self.client.put(f'/api/v1/customer/cart/{item_id}/', {'quantity': 3}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['total_items'], 3)

        response = self.client.delete(f'/api/v1/customer/cart/{item_id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['items'], [])
        self.assertTrue(AuditLog.objects.filter(action='cart_remove').exists())

    def test_add_over_stock(self):
        response = self.client.post('/api/v1/customer/cart/', {'product_id': self.product.id, 'quantity': 9},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error']['code'], 'INSUFFICIENT_STOCK')

    def test_add_invalid_quantity(self):
        response = self.client.post('/api/v1/customer/cart/', {'product_id': self.product.id, 'quantity': 0},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'VALIDATION_ERROR')
        self.assertEqual(response.data['error']['details'][0]['field'], 'quantity')

    def test_remove_missing_item(self):
        response = self.client.delete('/api/v1/customer/cart/999999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error']['code'], 'CART_ITEM_NOT_FOUND')

    def test_clear(self):
        TestDataFactory.add_to_cart(self.customer, self.product, 1)
        response = self.client.delete('/api/v1/customer/cart/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['total_items'], 0)

    def test_requires_authentication(self):
        self.client.logout()
        response = self.client.get('/api/v1/customer/cart/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['error']['code'], 'NOT_AUTHENTICATED')

    def test_update_negative_quantity_removes_line(self):
        item = TestDataFactory.add_to_cart(self.customer, self.product, 2)
        response = self.client.put(f'/api/v1/customer/cart/{item.id}/', {'quantity': -1}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['items'], [])
        self.assertFalse(CartItem.objects.filter(pk=item.pk).exists())

    def test_farmer_has_no_cart(self):
        self.client.authenticate_user(TestDataFactory.create_farmer())
        response = self.client.get('/api/v1/customer/cart/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error']['code'], 'UNAUTHORIZED')


class OrderAPITests(TestCase):
    """Test order placement and lifecycle endpoints"""

    def setUp(self):
        self.customer = TestDataFactory.create_customer()
        self.farmer = TestDataFactory.create_farmer()
        self.admin = TestDataFactory.create_admin()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.customer)
        self.carrots = TestDataFactory.create_product(farmer=self.farmer, price=Decimal('100.00'), stock=10)
        self.milk = TestDataFactory.create_product(farmer=self.farmer, price=Decimal('50.00'), stock=10)

    def _place(self, **overrides):
        payload = {'delivery_address': TestDataFactory.delivery_address(), 'payment_method': 'cod'}
        payload.update(overrides)
        return self.client.post('/api/v1/customer/orders/', payload, format='json')

    def test_place_order(self):
        TestDataFactory.add_to_cart(self.customer, self.carrots, 2)
        TestDataFactory.add_to_cart(self.customer, self.milk, 1)

        response = self._place()

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        data = response.data['data']
        self.assertEqual(data['subtotal'], '250.00')
        self.assertEqual(data['taxes'], '12.50')
        self.assertEqual(data['total'], '312.50')
        self.assertEqual(data['status'], 'pending')
        self.assertEqual(len(data['items']), 2)
        self.assertEqual(data['delivery_address']['city'], 'Pune')
        self.assertTrue(AuditLog.objects.filter(action='order_place', object_reference=data['order_number']).exists())

    def test_place_order_empty_cart(self):
        response = self._place()
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'CART_EMPTY')

    def test_place_order_invalid_address(self):
        TestDataFactory.add_to_cart(self.customer, self.carrots, 1)
        response = self._place(delivery_address=TestDataFactory.delivery_address(phone='12345', pincode='41'))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'VALIDATION_ERROR')
        fields = {row['field'] for row in response.data['error']['details']}
        self.assertEqual(fields, {'delivery_address.phone', 'delivery_address.pincode'})
        self.assertFalse(Order.objects.exists())

    def test_list_and_detail_are_scoped_to_owner(self):
        order = TestDataFactory.create_order(self.customer, [(self.carrots, 1)])
        TestDataFactory.create_order(TestDataFactory.create_customer(), [(self.milk, 1)])

        response = self.client.get('/api/v1/customer/orders/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['count'], 1)
        self.assertEqual(response.data['data']['results'][0]['order_number'], order.order_number)

        other = Order.objects.exclude(pk=order.pk).get()
        response = self.client.get(f'/api/v1/customer/orders/{other.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_cancel_endpoint(self):
        order = TestDataFactory.create_order(self.customer, [(self.carrots, 4)])
        response = self.client.put(f'/api/v1/customer/orders/{order.id}/cancel/', {'reason': 'Bought elsewhere'},
                                   format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['status'], 'cancelled')
        self.carrots.refresh_from_db()
        self.assertEqual(self.carrots.stock, 10)
        self.assertTrue(AuditLog.objects.filter(action='order_cancel').exists())

        response = self.client.put(f'/api/v1/customer/orders/{order.id}/cancel/', {'reason': 'Bought elsewhere'},
                                   format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error']['code'], 'CANNOT_CANCEL')

    def test_cancel_reason_required(self):
        order = TestDataFactory.create_order(self.customer, [(self.carrots, 1)])
        response = self.client.put(f'/api/v1/customer/orders/{order.id}/cancel/', {'reason': 'no'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_return_endpoint_window_expired(self):
        order = TestDataFactory.create_order(self.customer, [(self.carrots, 1)])
        TestDataFactory.mark_delivered(order, timezone.now() - timedelta(days=10))
        response = self.client.post(f'/api/v1/customer/orders/{order.id}/return/',
                                    {'reason': 'Vegetables were not fresh'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error']['code'], 'RETURN_WINDOW_EXPIRED')

    def test_return_bank_refund_without_details(self):
        order = TestDataFactory.create_order(self.customer, [(self.carrots, 1)])
        TestDataFactory.mark_delivered(order)
        response = self.client.post(f'/api/v1/customer/orders/{order.id}/return/',
                                    {'reason': 'Vegetables were not fresh', 'refund_method': 'bank'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'BANK_DETAILS_REQUIRED')

    def test_farmer_status_flow_and_listing(self):
        order = TestDataFactory.create_order(self.customer, [(self.carrots, 1)])
        farmer_client = AuthenticatedAPIClient().authenticate_user(self.farmer)

        response = farmer_client.get('/api/v1/farmer/orders/?status=pending')
        self.assertEqual(response.data['data']['count'], 1)

        response = farmer_client.put(f'/api/v1/farmer/orders/{order.id}/status/', {'status': 'accepted'},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['status'], 'accepted')
        log = AuditLog.objects.get(action='order_status', object_id=str(order.id))
        self.assertEqual(log.changes['status'], {'old': 'pending', 'new': 'accepted'})

        response = farmer_client.put(f'/api/v1/farmer/orders/{order.id}/status/', {'status': 'delivered'},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error']['code'], 'INVALID_TRANSITION')

        response = farmer_client.put(f'/api/v1/farmer/orders/{order.id}/status/', {'status': 'rejected'},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error']['code'], 'UNAUTHORIZED')

    def test_farmer_detail_lists_only_own_lines(self):
        other_product = TestDataFactory.create_product(price=Decimal('10.00'))
        order = TestDataFactory.create_order(self.customer, [(self.carrots, 1), (other_product, 1)])
        farmer_client = AuthenticatedAPIClient().authenticate_user(self.farmer)
        response = farmer_client.get(f'/api/v1/farmer/orders/{order.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([item['product_name'] for item in response.data['data']['items']], [self.carrots.name])

    def test_admin_resolve(self):
        order = TestDataFactory.create_order(self.customer, [(self.carrots, 2)])
        TestDataFactory.mark_delivered(order)
        response = self.client.post(f'/api/v1/customer/orders/{order.id}/return/', {
            'reason': 'Vegetables were not fresh',
            'refund_method': 'bank',
            'bank_details': {'account_number': '123456789012', 'ifsc_code': 'HDFC0000123',
                             'account_holder_name': 'Asha Rao'},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['status'], 'return_requested')

        admin_client = AuthenticatedAPIClient().authenticate_user(self.admin)
        response = admin_client.put(f'/api/v1/admin/orders/{order.id}/resolve/', {'approved': True}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['status'], 'resolved')
        self.assertEqual(response.data['data']['refund_amount'], response.data['data']['total'])

    def test_admin_list_requires_admin(self):
        response = self.client.get('/api/v1/admin/orders/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        TestDataFactory.create_order(self.customer, [(self.carrots, 1)])
        admin_client = AuthenticatedAPIClient().authenticate_user(self.admin)
        response = admin_client.get('/api/v1/admin/orders/?status=pending')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['count'], 1)
