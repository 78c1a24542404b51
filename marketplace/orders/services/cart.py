"""
Cart mutation operations.

These stay intentionally loose: availability and stock are re-checked
authoritatively when the order is placed, so here they only guard obviously
bad input. Every operation works on plain model records and returns the
customer's Cart.
"""
import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import DecimalField, F, Sum

from marketplace.catalog.models import Product
from marketplace.core.exceptions import (
    CartItemNotFound, InsufficientStock, ProductNotFound, ProductUnavailable, ValidationFailed,
)
from ..models import Cart, CartItem

logger = logging.getLogger(__name__)


def get_or_create_cart(customer):
    cart, created = Cart.objects.get_or_create(customer=customer)
    if created:
        logger.info(f"Cart created for customer_id={customer.id}")
    return cart


def _lock_cart(customer):
    """Fetch (creating if needed) and row-lock the customer's cart; call inside atomic()"""
    cart = get_or_create_cart(customer)
    return Cart.objects.select_for_update().get(pk=cart.pk)


def _touch(cart):
    cart.save(update_fields=['updated_at'])


def add_item(customer, product_id, quantity):
    """Add quantity of a product, merging into an existing line"""
    if quantity < 1:
        raise ValidationFailed('Quantity must be at least 1', details=[{'field': 'quantity', 'message': 'Quantity must be at least 1'}])

    try:
        product = Product.objects.get(pk=product_id)
    except Product.DoesNotExist:
        raise ProductNotFound()

    if not product.is_purchasable:
        raise ProductUnavailable(
            f'Product {product.name} is not available',
            details={'product_id': product.id, 'product_name': product.name},
        )
    if product.stock < quantity:
        raise InsufficientStock(
            f'Only {product.stock} items available',
            details={'product_id': product.id, 'product_name': product.name,
                     'requested': quantity, 'available': product.stock},
        )

    with transaction.atomic():
        cart = _lock_cart(customer)
        item, created = CartItem.objects.get_or_create(
            cart=cart,
            product=product,
            defaults={'quantity': quantity, 'price': product.price},
        )
        if not created:
            CartItem.objects.filter(pk=item.pk).update(quantity=F('quantity') + quantity)
        _touch(cart)

    logger.info(f"Cart add: customer_id={customer.id}, product_id={product.id}, quantity={quantity}, merged={not created}")
    return cart


def _get_item(cart, item_id):
    try:
        return CartItem.objects.select_related('product').get(pk=item_id, cart=cart)
    except CartItem.DoesNotExist:
        raise CartItemNotFound()


def update_item_quantity(customer, item_id, quantity):
    """Replace a line's quantity; zero or less removes the line"""
    with transaction.atomic():
        cart = _lock_cart(customer)
        item = _get_item(cart, item_id)

        if quantity <= 0:
            item.delete()
            logger.info(f"Cart line removed via zero quantity: customer_id={customer.id}, item_id={item_id}")
        else:
            product = item.product
            if product.stock < quantity:
                raise InsufficientStock(
                    f'Only {product.stock} items available',
                    details={'product_id': product.id, 'product_name': product.name,
                             'requested': quantity, 'available': product.stock},
                )
            item.quantity = quantity
            item.save(update_fields=['quantity'])
        _touch(cart)
    return cart


def remove_item(customer, item_id):
    with transaction.atomic():
        cart = _lock_cart(customer)
        item = _get_item(cart, item_id)
        item.delete()
        _touch(cart)
    return cart


def clear_cart(customer):
    """Empty the cart; the cart record itself is kept"""
    with transaction.atomic():
        cart = _lock_cart(customer)
        removed, _ = cart.items.all().delete()
        _touch(cart)
    logger.info(f"Cart cleared: customer_id={customer.id}, removed={removed}")
    return cart


def cart_totals(cart):
    """Item count and display total from add-time price snapshots"""
    totals = cart.items.aggregate(
        total_items=Sum('quantity'),
        total=Sum(F('price') * F('quantity'), output_field=DecimalField(max_digits=12, decimal_places=2)),
    )
    return {
        'total_items': totals['total_items'] or 0,
        'total': (totals['total'] or Decimal('0.00')).quantize(Decimal('0.01')),
    }
