import django_filters
from django.db.models import Q
from .models import Product


class ProductFilter(django_filters.FilterSet):
    """
    Public catalog filters

    Query params:
        search: matches name or description (case-insensitive)
        category, unit: exact choice values
        organic: true/false
        farmer: farmer user id
        min_price / max_price: inclusive price range
        in_stock: true to hide sold-out products
        ordering: price, -price, name, -name, created_at, -created_at
    """
    search = django_filters.CharFilter(method='filter_search', label='Search')
    category = django_filters.ChoiceFilter(choices=Product.CATEGORY_CHOICES)
    unit = django_filters.ChoiceFilter(choices=Product.UNIT_CHOICES)
    organic = django_filters.BooleanFilter(field_name='is_organic')
    farmer = django_filters.NumberFilter(field_name='farmer_id', lookup_expr='exact')
    min_price = django_filters.NumberFilter(field_name='price', lookup_expr='gte')
    max_price = django_filters.NumberFilter(field_name='price', lookup_expr='lte')
    in_stock = django_filters.BooleanFilter(method='filter_in_stock', label='In Stock')
    ordering = django_filters.OrderingFilter(
        fields=(
            ('price', 'price'),
            ('name', 'name'),
            ('created_at', 'created_at'),
        ),
    )

    class Meta:
        model = Product
        fields = ['search', 'category', 'unit', 'organic', 'farmer', 'min_price', 'max_price', 'in_stock']

    def filter_search(self, queryset, name, value):
        value = (value or '').strip()
        if not value:
            return queryset
        return queryset.filter(Q(name__icontains=value) | Q(description__icontains=value))

    def filter_in_stock(self, queryset, name, value):
        if value:
            return queryset.filter(stock__gt=0)
        return queryset
