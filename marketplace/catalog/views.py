from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import AllowAny
from django.db.models import Count
import logging
from .models import Product
from .filters import ProductFilter
from .serializers import ProductSerializer, ProductApprovalSerializer
from marketplace.core.cache_utils import (
    cached_query, invalidate_analytics_cache, invalidate_category_cache,
    CATEGORY_SUMMARY_CACHE_TTL, CATEGORY_SUMMARY_PREFIX,
)
from marketplace.core.exceptions import ProductNotFound, NotPermitted
from marketplace.core.permissions import IsFarmer, IsMarketplaceAdmin
from marketplace.core.utils import create_audit_log, paginate, success

logger = logging.getLogger(__name__)


def apply_product_filters(request, queryset):
    """Run ProductFilter over the query string, rejecting malformed params"""
    filterset = ProductFilter(request.query_params, queryset=queryset)
    if not filterset.is_valid():
        raise ValidationError(filterset.errors)
    return filterset.qs


def get_product_or_404(pk):
    try:
        return Product.objects.select_related('farmer').get(pk=pk)
    except Product.DoesNotExist:
        raise ProductNotFound()


def _catalog_changed():
    invalidate_category_cache()
    invalidate_analytics_cache()


@cached_query(cache_ttl=CATEGORY_SUMMARY_CACHE_TTL, key_prefix=CATEGORY_SUMMARY_PREFIX)
def build_category_summary():
    rows = (
        Product.objects.filter(is_approved=True, is_available=True)
        .order_by()
        .values('category')
        .annotate(count=Count('id'))
    )
    counts = {row['category']: row['count'] for row in rows}
    return [
        {'category': value, 'label': label, 'count': counts[value]}
        for value, label in Product.CATEGORY_CHOICES
        if counts.get(value)
    ]


# Public catalog
@api_view(['GET'])
@permission_classes([AllowAny])
def product_list(request):
    """List approved, available products with filtering, ordering and pagination"""
    queryset = Product.objects.select_related('farmer').filter(is_approved=True, is_available=True)
    queryset = apply_product_filters(request, queryset)
    return paginate(request, queryset, ProductSerializer)


@api_view(['GET'])
@permission_classes([AllowAny])
def product_detail(request, pk):
    """Retrieve a product; unlisted products are visible only to their farmer and admins"""
    product = get_product_or_404(pk)
    if not product.is_purchasable:
        user = request.user
        is_owner = user.is_authenticated and product.farmer_id == user.id
        if not (is_owner or (user.is_authenticated and user.is_marketplace_admin)):
            raise ProductNotFound()
    return success(ProductSerializer(product).data)


@api_view(['GET'])
@permission_classes([AllowAny])
def category_list(request):
    """Categories that currently have listed products, with counts"""
    return success(build_category_summary())


# Farmer product management
@api_view(['GET', 'POST'])
@permission_classes([IsFarmer])
def farmer_product_list_create(request):
    """List the farmer's own products or create a new one (pending approval)"""
    if request.method == 'GET':
        queryset = Product.objects.filter(farmer=request.user)
        queryset = apply_product_filters(request, queryset)
        return paginate(request, queryset, ProductSerializer)

    serializer = ProductSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    product = serializer.save(farmer=request.user, is_approved=False)

    create_audit_log(
        request=request,
        action='create',
        model_name='Product',
        object_id=str(product.id),
        object_name=product.name,
        changes={'price': str(product.price), 'stock': product.stock, 'category': product.category},
    )
    _catalog_changed()
    logger.info(f"Product created: product_id={product.id}, farmer_id={request.user.id}")
    return success(ProductSerializer(product).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsFarmer])
def farmer_product_detail(request, pk):
    """Retrieve, update or delete one of the farmer's own products"""
    product = get_product_or_404(pk)
    if product.farmer_id != request.user.id:
        raise NotPermitted('You can only manage your own products')

    if request.method == 'GET':
        return success(ProductSerializer(product).data)

    if request.method == 'DELETE':
        create_audit_log(
            request=request,
            action='delete',
            model_name='Product',
            object_id=str(product.id),
            object_name=product.name,
        )
        product.delete()
        _catalog_changed()
        return success({'id': pk, 'deleted': True})

    old_values = {'price': str(product.price), 'stock': product.stock, 'is_available': product.is_available}
    serializer = ProductSerializer(product, data=request.data, partial=request.method == 'PATCH')
    serializer.is_valid(raise_exception=True)
    product = serializer.save()

    create_audit_log(
        request=request,
        action='update',
        model_name='Product',
        object_id=str(product.id),
        object_name=product.name,
        changes={
            'old': old_values,
            'new': {'price': str(product.price), 'stock': product.stock, 'is_available': product.is_available},
        },
    )
    _catalog_changed()
    return success(ProductSerializer(product).data)


# Admin moderation
@api_view(['GET'])
@permission_classes([IsMarketplaceAdmin])
def admin_product_list(request):
    """List every product, optionally filtered by approval state"""
    queryset = Product.objects.select_related('farmer').all()
    approved = request.query_params.get('approved')
    if approved is not None:
        queryset = queryset.filter(is_approved=approved.lower() in ('1', 'true', 'yes'))
    queryset = apply_product_filters(request, queryset)
    return paginate(request, queryset, ProductSerializer)


@api_view(['PUT'])
@permission_classes([IsMarketplaceAdmin])
def admin_product_approve(request, pk):
    """Approve or reject a product listing"""
    product = get_product_or_404(pk)
    serializer = ProductApprovalSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    old_value = product.is_approved
    product.is_approved = serializer.validated_data['is_approved']
    product.save(update_fields=['is_approved', 'updated_at'])

    create_audit_log(
        request=request,
        action='product_approve',
        model_name='Product',
        object_id=str(product.id),
        object_name=product.name,
        changes={'is_approved': {'old': old_value, 'new': product.is_approved}},
    )
    _catalog_changed()
    return success(ProductSerializer(product).data)


@api_view(['GET', 'DELETE'])
@permission_classes([IsMarketplaceAdmin])
def admin_product_detail(request, pk):
    """Retrieve or remove any product; past order lines keep their snapshot"""
    product = get_product_or_404(pk)

    if request.method == 'GET':
        return success(ProductSerializer(product).data)

    create_audit_log(
        request=request,
        action='delete',
        model_name='Product',
        object_id=str(product.id),
        object_name=product.name,
        changes={'farmer_id': product.farmer_id, 'removed_by': 'admin'},
    )
    product.delete()
    _catalog_changed()
    logger.info(f"Product deleted by admin: product_id={pk}, admin_id={request.user.id}")
    return success({'id': pk, 'deleted': True})
