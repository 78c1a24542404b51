"""
Order status state machine.

TRANSITIONS lists every legal edge; ACTOR_TRANSITIONS lists which targets
each role may drive. All writes go through transition() (or the cancel,
return and resolve helpers built on it), which locks the order row, checks
actor and edge, applies the side effects and appends a history entry in one
transaction.
"""
import logging
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from marketplace.core.exceptions import (
    BankDetailsRequired, CannotCancel, InvalidTransition, NotPermitted, OrderNotFound, ReturnWindowExpired,
)
from marketplace.core.models import User
from .models import Order, OrderItem, OrderStatusHistory
from .services.placement import restore_stock

logger = logging.getLogger(__name__)

TRANSITIONS = {
    Order.STATUS_PENDING: {Order.STATUS_ACCEPTED, Order.STATUS_REJECTED, Order.STATUS_CANCELLED},
    Order.STATUS_ACCEPTED: {Order.STATUS_PROCESSING, Order.STATUS_REJECTED, Order.STATUS_CANCELLED},
    Order.STATUS_PROCESSING: {Order.STATUS_SHIPPED},
    Order.STATUS_SHIPPED: {Order.STATUS_DELIVERED},
    Order.STATUS_DELIVERED: {Order.STATUS_RETURN_REQUESTED},
    Order.STATUS_RETURN_REQUESTED: {Order.STATUS_RESOLVED},
    Order.STATUS_REJECTED: set(),
    Order.STATUS_CANCELLED: set(),
    Order.STATUS_RESOLVED: set(),
}

CANCELLABLE_STATUSES = {Order.STATUS_PENDING, Order.STATUS_ACCEPTED}

ACTOR_TRANSITIONS = {
    User.ROLE_CUSTOMER: {Order.STATUS_CANCELLED, Order.STATUS_RETURN_REQUESTED},
    User.ROLE_FARMER: {Order.STATUS_ACCEPTED, Order.STATUS_PROCESSING, Order.STATUS_SHIPPED,
                       Order.STATUS_DELIVERED},
    User.ROLE_ADMIN: {status for status, _ in Order.STATUS_CHOICES},
}


def actor_role(actor):
    if actor.is_marketplace_admin:
        return User.ROLE_ADMIN
    return actor.role


def allowed_targets(role):
    """Statuses a role may move an order into (before ownership and edge checks)"""
    return set(ACTOR_TRANSITIONS.get(role, set()))


def can_transition(current, target):
    return target in TRANSITIONS.get(current, set())


def return_window_days():
    return int(settings.MARKETPLACE.get('RETURN_WINDOW_DAYS', 7))


def is_return_eligible(order, now=None):
    """Delivered orders may be returned up to and including RETURN_WINDOW_DAYS after delivery"""
    if order.status != Order.STATUS_DELIVERED or order.delivered_at is None:
        return False
    now = now or timezone.now()
    return now - order.delivered_at <= timedelta(days=return_window_days())


def _lock_order(order_id):
    order = Order.objects.select_for_update().filter(pk=order_id).first()
    if order is None:
        raise OrderNotFound()
    return order


def _check_actor(order, actor, target):
    role = actor_role(actor)
    if target not in allowed_targets(role):
        raise NotPermitted(f"Role '{role}' cannot set status '{target}'")
    if role == User.ROLE_CUSTOMER and order.customer_id != actor.id:
        raise NotPermitted('You can only manage your own orders')
    if role == User.ROLE_FARMER and not OrderItem.objects.filter(order=order, farmer=actor).exists():
        raise NotPermitted('Order does not contain your products')


def _check_edge(order, target, now):
    if target == Order.STATUS_CANCELLED and order.status not in CANCELLABLE_STATUSES:
        raise CannotCancel(
            f"Order cannot be cancelled once it is '{order.status}'",
            details={'status': order.status},
        )
    if not can_transition(order.status, target):
        raise InvalidTransition(
            f"Cannot change order status from '{order.status}' to '{target}'",
            details={'from': order.status, 'to': target},
        )
    if target == Order.STATUS_RETURN_REQUESTED and not is_return_eligible(order, now=now):
        raise ReturnWindowExpired(
            f'Returns are accepted within {return_window_days()} days of delivery',
            details={'delivered_at': order.delivered_at.isoformat() if order.delivered_at else None},
        )


def _apply_cancel(order, fields, update_fields):
    restore_stock(order.items.all())
    order.cancellation_reason = fields.get('reason') or ''
    update_fields.append('cancellation_reason')
    if order.payment_status == 'paid':
        order.refund_amount = order.total
        order.payment_status = 'refunded'
        update_fields += ['refund_amount', 'payment_status']


def _apply_delivered(order, fields, update_fields, now):
    order.delivered_at = now
    update_fields.append('delivered_at')


def _apply_return_request(order, fields, update_fields):
    order.return_reason = fields.get('reason') or ''
    order.refund_method = fields.get('refund_method') or 'original'
    bank = fields.get('bank_details') or {}
    order.bank_account_number = bank.get('account_number', '')
    order.bank_ifsc_code = bank.get('ifsc_code', '')
    order.bank_account_holder = bank.get('account_holder_name', '')
    if order.refund_method == 'bank' and not order.has_bank_details:
        raise BankDetailsRequired()
    update_fields += ['return_reason', 'refund_method', 'bank_account_number', 'bank_ifsc_code',
                      'bank_account_holder']


def _apply_resolve(order, fields, update_fields):
    if order.refund_method == 'bank' and not order.has_bank_details:
        raise BankDetailsRequired()
    if fields.get('approved', True):
        refund_amount = fields.get('refund_amount')
        order.refund_amount = Decimal(refund_amount) if refund_amount is not None else order.total
        order.payment_status = 'refunded'
        update_fields += ['refund_amount', 'payment_status']
        restore_stock(order.items.all())
    else:
        order.refund_amount = Decimal('0.00')
        update_fields.append('refund_amount')


def _apply_shipping(order, fields, update_fields):
    for field in ('tracking_id', 'delivery_partner'):
        if fields.get(field):
            setattr(order, field, fields[field])
            update_fields.append(field)


def transition(order_id, target, actor, note='', **fields):
    """
    Move an order to target status on behalf of actor.

    Extra keyword fields feed the side effects: reason (cancel and return),
    refund_method and bank_details (return), approved and refund_amount
    (resolve), tracking_id and delivery_partner (shipping updates).

    The returned order carries previous_status, read under the row lock.

    Raises OrderNotFound, NotPermitted, CannotCancel, InvalidTransition,
    ReturnWindowExpired or BankDetailsRequired; nothing is written when any
    of them is raised.
    """
    if target not in TRANSITIONS:
        raise InvalidTransition(f"Unknown status '{target}'", details={'to': target})

    with transaction.atomic():
        order = _lock_order(order_id)
        now = timezone.now()
        _check_actor(order, actor, target)
        _check_edge(order, target, now)

        previous = order.status
        update_fields = ['status', 'updated_at']
        if target == Order.STATUS_CANCELLED:
            _apply_cancel(order, fields, update_fields)
        elif target == Order.STATUS_DELIVERED:
            _apply_delivered(order, fields, update_fields, now)
        elif target == Order.STATUS_RETURN_REQUESTED:
            _apply_return_request(order, fields, update_fields)
        elif target == Order.STATUS_RESOLVED:
            _apply_resolve(order, fields, update_fields)
        _apply_shipping(order, fields, update_fields)

        order.status = target
        order.save(update_fields=update_fields)
        order.previous_status = previous
        OrderStatusHistory.objects.create(
            order=order,
            status=target,
            note=note or fields.get('reason') or '',
            updated_by=actor,
        )

    logger.info(f"Order status changed: order_number={order.order_number}, {previous} -> {target}, "
                f"actor_id={actor.id}")
    return order


def cancel_order(order_id, actor, reason=''):
    return transition(order_id, Order.STATUS_CANCELLED, actor, note=f'Cancelled: {reason}' if reason else 'Cancelled',
                      reason=reason)


def request_return(order_id, actor, reason, refund_method='original', bank_details=None):
    return transition(order_id, Order.STATUS_RETURN_REQUESTED, actor, note=f'Return requested: {reason}',
                      reason=reason, refund_method=refund_method, bank_details=bank_details)


def resolve_return(order_id, actor, approved=True, refund_amount=None, note=''):
    default_note = 'Return approved' if approved else 'Return declined'
    return transition(order_id, Order.STATUS_RESOLVED, actor, note=note or default_note,
                      approved=approved, refund_amount=refund_amount)
