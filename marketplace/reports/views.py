import logging
from rest_framework.decorators import api_view, permission_classes
from django.db.models import Sum, Count, Q, DecimalField
from django.utils import timezone
from datetime import timedelta
from decimal import Decimal

from marketplace.catalog.models import Product
from marketplace.core.cache_utils import cached_query, ANALYTICS_CACHE_TTL, ANALYTICS_PREFIX
from marketplace.core.models import User
from marketplace.core.permissions import IsFarmer, IsMarketplaceAdmin
from marketplace.core.utils import success
from marketplace.orders.models import Order, OrderItem

logger = logging.getLogger(__name__)


def build_farmer_analytics(farmer):
    """Catalog and sales figures for one farmer"""
    logger.debug(f"Computing analytics for farmer_id={farmer.id}")
    products = Product.objects.filter(farmer=farmer).aggregate(
        total=Count('id'),
        approved=Count('id', filter=Q(is_approved=True)),
        out_of_stock=Count('id', filter=Q(stock=0)),
    )

    orders = Order.objects.filter(items__farmer=farmer).distinct()
    total_orders = orders.count()
    pending_orders = orders.filter(status=Order.STATUS_PENDING).count()

    # Earnings count only the farmer's own lines on delivered orders
    earnings = OrderItem.objects.filter(
        farmer=farmer,
        order__status=Order.STATUS_DELIVERED,
    ).aggregate(total=Sum('subtotal', output_field=DecimalField()))['total'] or Decimal('0.00')

    top_products = (
        OrderItem.objects.filter(farmer=farmer)
        .exclude(order__status__in=[Order.STATUS_CANCELLED, Order.STATUS_REJECTED])
        .values('product_name')
        .annotate(quantity=Sum('quantity'), revenue=Sum('subtotal', output_field=DecimalField()))
        .order_by('-quantity')[:5]
    )

    return {
        'total_products': products['total'],
        'approved_products': products['approved'],
        'out_of_stock_products': products['out_of_stock'],
        'total_orders': total_orders,
        'pending_orders': pending_orders,
        'total_earnings': str(earnings),
        'top_products': [
            {'product_name': row['product_name'], 'quantity': row['quantity'], 'revenue': str(row['revenue'])}
            for row in top_products
        ],
    }


@cached_query(cache_ttl=ANALYTICS_CACHE_TTL, key_prefix=ANALYTICS_PREFIX)
def build_platform_analytics():
    """Platform-wide counts and revenue for the admin dashboard"""
    logger.debug("Computing platform analytics")
    week_ago = timezone.now() - timedelta(days=7)

    users = User.objects.aggregate(
        total=Count('id'),
        customers=Count('id', filter=Q(role=User.ROLE_CUSTOMER)),
        farmers=Count('id', filter=Q(role=User.ROLE_FARMER)),
        admins=Count('id', filter=Q(role=User.ROLE_ADMIN)),
        banned=Count('id', filter=Q(is_active=False)),
    )
    products = Product.objects.aggregate(
        total=Count('id'),
        approved=Count('id', filter=Q(is_approved=True)),
        pending=Count('id', filter=Q(is_approved=False)),
    )
    orders = Order.objects.aggregate(
        total=Count('id'),
        pending=Count('id', filter=Q(status=Order.STATUS_PENDING)),
        delivered=Count('id', filter=Q(status=Order.STATUS_DELIVERED)),
        cancelled=Count('id', filter=Q(status=Order.STATUS_CANCELLED)),
        last_7_days=Count('id', filter=Q(created_at__gte=week_ago)),
    )
    revenue = Order.objects.filter(status=Order.STATUS_DELIVERED).aggregate(
        total=Sum('total', output_field=DecimalField())
    )['total'] or Decimal('0.00')

    category_rows = (
        Product.objects.order_by()
        .values('category')
        .annotate(count=Count('id'))
    )
    categories = {row['category']: row['count'] for row in category_rows}

    status_rows = Order.objects.order_by().values('status').annotate(count=Count('id'))

    return {
        'users': users,
        'products': products,
        'orders': orders,
        'revenue': str(revenue),
        'category_distribution': [
            {'category': value, 'label': label, 'count': categories.get(value, 0)}
            for value, label in Product.CATEGORY_CHOICES
        ],
        'order_status_distribution': {row['status']: row['count'] for row in status_rows},
    }


@api_view(['GET'])
@permission_classes([IsFarmer])
def farmer_analytics(request):
    """Sales dashboard for the logged-in farmer"""
    return success(build_farmer_analytics(request.user))


@api_view(['GET'])
@permission_classes([IsMarketplaceAdmin])
def platform_analytics(request):
    """Admin dashboard analytics (cached)"""
    return success(build_platform_analytics())
