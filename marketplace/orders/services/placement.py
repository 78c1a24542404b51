"""
Order placement: turn a customer's cart into an order as one atomic unit.

Validation runs against live product rows before anything is written. The
writes (order insert, stock decrement, cart clear) share a single
transaction, and every stock decrement is conditional on enough stock still
being there, so two orders racing for the last unit can never both succeed.
"""
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from marketplace.catalog.models import Product
from marketplace.core.exceptions import CartEmpty, InsufficientStock, ProductUnavailable
from ..models import Cart, Order, OrderItem, OrderStatusHistory

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    delivery_charges: Decimal
    taxes: Decimal
    total: Decimal


def compute_totals(subtotal):
    """Flat delivery charge plus a fixed tax percentage of the subtotal"""
    options = settings.MARKETPLACE
    subtotal = Decimal(subtotal).quantize(CENT, rounding=ROUND_HALF_UP)
    delivery = Decimal(str(options['DELIVERY_CHARGE'])).quantize(CENT, rounding=ROUND_HALF_UP)
    taxes = (subtotal * Decimal(str(options['TAX_RATE']))).quantize(CENT, rounding=ROUND_HALF_UP)
    return OrderTotals(
        subtotal=subtotal,
        delivery_charges=delivery,
        taxes=taxes,
        total=subtotal + delivery + taxes,
    )


def generate_order_number():
    order_number = f"ORD-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"
    while Order.objects.filter(order_number=order_number).exists():
        order_number = f"ORD-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"
    return order_number


def reserve_stock(product_id, quantity):
    """
    Decrement stock by quantity only if at least quantity remains.

    Returns True when the row was updated. The check and the write are one
    UPDATE statement, so concurrent callers cannot oversell.
    """
    updated = Product.objects.filter(pk=product_id, stock__gte=quantity).update(stock=F('stock') - quantity)
    return updated == 1


def restore_stock(items):
    """Unconditionally add each order item's quantity back to its product"""
    for item in items:
        if item.product_id is None:
            # Product was deleted after the order; nothing to restock
            continue
        Product.objects.filter(pk=item.product_id).update(stock=F('stock') + item.quantity)


def _load_cart_lines(customer):
    """Lock the cart and its products; return (cart, [(cart_item, live_product)])"""
    cart = Cart.objects.select_for_update().filter(customer=customer).first()
    if cart is None:
        raise CartEmpty()

    items = list(cart.items.all())
    if not items:
        raise CartEmpty()

    # Lock products in primary-key order so concurrent placements cannot deadlock
    product_ids = sorted({item.product_id for item in items})
    products = {
        product.pk: product
        for product in Product.objects.select_for_update().filter(pk__in=product_ids).order_by('pk')
    }
    return cart, [(item, products[item.product_id]) for item in items]


def _validate_lines(lines):
    for item, product in lines:
        if not product.is_purchasable:
            raise ProductUnavailable(
                f'Product {product.name} is no longer available',
                details={'product_id': product.id, 'product_name': product.name},
            )

    for item, product in lines:
        if product.stock < item.quantity:
            raise InsufficientStock(
                f'Insufficient stock for {product.name}: only {product.stock} available',
                details={'product_id': product.id, 'product_name': product.name,
                         'requested': item.quantity, 'available': product.stock},
            )


def place_order(customer, delivery_address, payment_method='cod', instructions='',
                expected_delivery_date=None):
    """
    Convert the customer's cart into an order.

    Args:
        customer: the ordering User
        delivery_address: dict with name, phone, street, city, state, pincode and
            optional landmark and coordinates ([longitude, latitude])
        payment_method: one of Order.PAYMENT_METHOD_CHOICES
        instructions: free-text delivery instructions
        expected_delivery_date: optional datetime

    Returns:
        The created Order.

    Raises:
        CartEmpty, ProductUnavailable, InsufficientStock. Nothing is written
        when any of these is raised.
    """
    with transaction.atomic():
        cart, lines = _load_cart_lines(customer)
        _validate_lines(lines)

        item_rows = []
        subtotal = Decimal('0.00')
        for item, product in lines:
            line_subtotal = (product.price * item.quantity).quantize(CENT)
            subtotal += line_subtotal
            item_rows.append(OrderItem(
                product=product,
                farmer_id=product.farmer_id,
                product_name=product.name,
                price=product.price,
                quantity=item.quantity,
                unit=product.unit,
                subtotal=line_subtotal,
            ))

        totals = compute_totals(subtotal)
        coordinates = delivery_address.get('coordinates') or [None, None]

        order = Order.objects.create(
            order_number=generate_order_number(),
            customer=customer,
            subtotal=totals.subtotal,
            delivery_charges=totals.delivery_charges,
            taxes=totals.taxes,
            total=totals.total,
            delivery_name=delivery_address['name'],
            delivery_phone=delivery_address['phone'],
            delivery_street=delivery_address['street'],
            delivery_city=delivery_address['city'],
            delivery_state=delivery_address['state'],
            delivery_pincode=delivery_address['pincode'],
            delivery_landmark=delivery_address.get('landmark') or '',
            delivery_longitude=coordinates[0],
            delivery_latitude=coordinates[1],
            status=Order.STATUS_PENDING,
            payment_method=payment_method,
            instructions=instructions or '',
            expected_delivery_date=expected_delivery_date,
        )
        for row in item_rows:
            row.order = order
        OrderItem.objects.bulk_create(item_rows)
        OrderStatusHistory.objects.create(
            order=order,
            status=Order.STATUS_PENDING,
            note='Order placed',
            updated_by=customer,
        )

        for item, product in lines:
            if not reserve_stock(product.pk, item.quantity):
                # Another order took the stock after validation; roll everything back
                product.refresh_from_db(fields=['stock'])
                logger.warning(f"Stock reservation lost race: product_id={product.pk}, requested={item.quantity}, available={product.stock}")
                raise InsufficientStock(
                    f'Insufficient stock for {product.name}: only {product.stock} available',
                    details={'product_id': product.id, 'product_name': product.name,
                             'requested': item.quantity, 'available': product.stock},
                )

        cart.items.all().delete()
        cart.save(update_fields=['updated_at'])

    logger.info(f"Order placed: order_number={order.order_number}, customer_id={customer.id}, "
                f"items={len(item_rows)}, total={order.total}")
    return order
