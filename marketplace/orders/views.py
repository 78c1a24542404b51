from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from django.db.models import Prefetch
from .models import Order, OrderItem
from .serializers import (
    CartSerializer, CartAddSerializer, CartUpdateSerializer,
    OrderSerializer, OrderListSerializer, OrderItemSerializer, PlaceOrderSerializer,
    StatusUpdateSerializer, CancelOrderSerializer, ReturnRequestSerializer, ResolveReturnSerializer,
)
from .services import cart as cart_service
from .services.placement import place_order
from . import state_machine
from marketplace.core.cache_utils import invalidate_analytics_cache
from marketplace.core.exceptions import OrderNotFound
from marketplace.core.permissions import IsCustomer, IsFarmer, IsMarketplaceAdmin
from marketplace.core.utils import create_audit_log, paginate, success

ORDER_AUDIT_ACTIONS = {
    Order.STATUS_CANCELLED: 'order_cancel',
    Order.STATUS_RETURN_REQUESTED: 'order_return',
    Order.STATUS_RESOLVED: 'order_resolve',
}


def _order_queryset():
    return Order.objects.select_related('customer').prefetch_related(
        Prefetch('items', queryset=OrderItem.objects.select_related('farmer')),
        'status_history__updated_by',
    )


def _order_response(order_id, status_code=status.HTTP_200_OK):
    return success(OrderSerializer(_order_queryset().get(pk=order_id)).data, status=status_code)


def _filter_status(request, queryset):
    order_status = request.query_params.get('status')
    if order_status:
        queryset = queryset.filter(status=order_status)
    return queryset


def _audit_transition(request, order, previous, note=''):
    create_audit_log(
        request=request,
        action=ORDER_AUDIT_ACTIONS.get(order.status, 'order_status'),
        model_name='Order',
        object_id=str(order.id),
        object_name=order.order_number,
        object_reference=order.order_number,
        changes={'status': {'old': previous, 'new': order.status}, 'note': note},
    )
    invalidate_analytics_cache()


def _run_transition(request, order_id, func, *args, **kwargs):
    """Apply a state machine operation and record it in the audit trail"""
    order = func(order_id, *args, actor=request.user, **kwargs)
    _audit_transition(request, order, order.previous_status, kwargs.get('note', ''))
    return _order_response(order.id)


# Customer cart
def _cart_response(cart, status_code=status.HTTP_200_OK):
    return success(CartSerializer(cart).data, status=status_code)


@api_view(['GET', 'POST', 'DELETE'])
@permission_classes([IsCustomer])
def cart_detail(request):
    """Get the cart, add a product to it, or clear it"""
    if request.method == 'GET':
        return _cart_response(cart_service.get_or_create_cart(request.user))

    if request.method == 'DELETE':
        cart = cart_service.clear_cart(request.user)
        create_audit_log(request=request, action='cart_clear', model_name='Cart', object_id=str(cart.id))
        return _cart_response(cart)

    serializer = CartAddSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    product_id = serializer.validated_data['product_id']
    quantity = serializer.validated_data['quantity']
    cart = cart_service.add_item(request.user, product_id, quantity)

    create_audit_log(
        request=request,
        action='cart_add',
        model_name='Cart',
        object_id=str(cart.id),
        changes={'product_id': product_id, 'quantity': quantity},
    )
    return _cart_response(cart)


@api_view(['PUT', 'DELETE'])
@permission_classes([IsCustomer])
def cart_item_detail(request, item_id):
    """Change a cart line's quantity or remove it"""
    if request.method == 'DELETE':
        cart = cart_service.remove_item(request.user, item_id)
        create_audit_log(
            request=request,
            action='cart_remove',
            model_name='CartItem',
            object_id=str(item_id),
        )
        return _cart_response(cart)

    serializer = CartUpdateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    quantity = serializer.validated_data['quantity']
    cart = cart_service.update_item_quantity(request.user, item_id, quantity)

    create_audit_log(
        request=request,
        action='cart_update',
        model_name='CartItem',
        object_id=str(item_id),
        changes={'quantity': quantity},
    )
    return _cart_response(cart)


# Customer orders
@api_view(['GET', 'POST'])
@permission_classes([IsCustomer])
def customer_order_list_create(request):
    """List own orders or place a new one from the cart"""
    if request.method == 'GET':
        queryset = _filter_status(request, Order.objects.filter(customer=request.user))
        return paginate(request, queryset, OrderListSerializer)

    serializer = PlaceOrderSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    order = place_order(
        request.user,
        data['delivery_address'],
        payment_method=data['payment_method'],
        instructions=data['instructions'],
        expected_delivery_date=data['expected_delivery_date'],
    )

    create_audit_log(
        request=request,
        action='order_place',
        model_name='Order',
        object_id=str(order.id),
        object_name=order.order_number,
        object_reference=order.order_number,
        changes={'total': str(order.total), 'items': order.items.count(), 'payment_method': order.payment_method},
    )
    invalidate_analytics_cache()
    return _order_response(order.id, status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsCustomer])
def customer_order_detail(request, pk):
    """Own order with items and status history"""
    order = _order_queryset().filter(pk=pk, customer=request.user).first()
    if order is None:
        raise OrderNotFound()
    return success(OrderSerializer(order).data)


@api_view(['PUT'])
@permission_classes([IsCustomer])
def customer_order_cancel(request, pk):
    """Cancel a pending or accepted order and restock its items"""
    serializer = CancelOrderSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    return _run_transition(request, pk, state_machine.cancel_order, reason=serializer.validated_data['reason'])


@api_view(['POST'])
@permission_classes([IsCustomer])
def customer_order_return(request, pk):
    """Request a return for a recently delivered order"""
    serializer = ReturnRequestSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    return _run_transition(
        request, pk, state_machine.request_return,
        reason=data['reason'],
        refund_method=data['refund_method'],
        bank_details=data.get('bank_details'),
    )


# Farmer order handling
@api_view(['GET'])
@permission_classes([IsFarmer])
def farmer_order_list(request):
    """Orders containing at least one of the farmer's products"""
    queryset = Order.objects.filter(items__farmer=request.user).distinct()
    queryset = _filter_status(request, queryset)
    return paginate(request, queryset, OrderListSerializer)


@api_view(['GET'])
@permission_classes([IsFarmer])
def farmer_order_detail(request, pk):
    """An order seen by a farmer: only the farmer's own lines are listed"""
    order = Order.objects.filter(pk=pk, items__farmer=request.user).distinct().first()
    if order is None:
        raise OrderNotFound()
    data = OrderSerializer(order).data
    data['items'] = OrderItemSerializer(order.items.filter(farmer=request.user), many=True).data
    return success(data)


def _status_update(request, pk):
    serializer = StatusUpdateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = dict(serializer.validated_data)
    target = data.pop('status')
    note = data.pop('note', '')
    return _run_transition(request, pk, state_machine.transition, target, note=note, **data)


@api_view(['PUT'])
@permission_classes([IsFarmer])
def farmer_order_status(request, pk):
    """Advance an order through accepted, processing, shipped and delivered"""
    return _status_update(request, pk)


# Admin order management
@api_view(['GET'])
@permission_classes([IsMarketplaceAdmin])
def admin_order_list(request):
    """All orders, optionally filtered by status or customer"""
    queryset = _filter_status(request, Order.objects.select_related('customer').all())
    customer = request.query_params.get('customer')
    if customer:
        queryset = queryset.filter(customer_id=customer)
    return paginate(request, queryset, OrderListSerializer)


@api_view(['GET'])
@permission_classes([IsMarketplaceAdmin])
def admin_order_detail(request, pk):
    order = _order_queryset().filter(pk=pk).first()
    if order is None:
        raise OrderNotFound()
    return success(OrderSerializer(order).data)


@api_view(['PUT'])
@permission_classes([IsMarketplaceAdmin])
def admin_order_status(request, pk):
    """Set any legal status, including rejected"""
    return _status_update(request, pk)


@api_view(['PUT'])
@permission_classes([IsMarketplaceAdmin])
def admin_order_resolve(request, pk):
    """Resolve a pending return, approving or declining the refund"""
    serializer = ResolveReturnSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    return _run_transition(
        request, pk, state_machine.resolve_return,
        approved=data['approved'],
        refund_amount=data['refund_amount'],
        note=data['note'],
    )
