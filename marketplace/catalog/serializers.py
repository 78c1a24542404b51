from rest_framework import serializers
from decimal import Decimal
from .models import Product


class ProductSerializer(serializers.ModelSerializer):
    farmer_name = serializers.SerializerMethodField()
    category_display = serializers.CharField(source='get_category_display', read_only=True)
    unit_display = serializers.CharField(source='get_unit_display', read_only=True)
    price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.00'))
    stock = serializers.IntegerField(min_value=0)

    def get_farmer_name(self, obj):
        """Farmer display name, falling back to username"""
        if not obj.farmer:
            return None
        return obj.farmer.get_full_name() or obj.farmer.username

    def validate_name(self, value):
        value = value.strip()
        if len(value) < 2:
            raise serializers.ValidationError('Name must be at least 2 characters')
        return value

    class Meta:
        model = Product
        fields = ['id', 'farmer', 'farmer_name', 'name', 'description', 'price', 'category', 'category_display',
                  'unit', 'unit_display', 'stock', 'is_available', 'is_approved', 'is_organic', 'image',
                  'created_at', 'updated_at']
        read_only_fields = ['farmer', 'is_approved', 'created_at', 'updated_at']


class ProductApprovalSerializer(serializers.Serializer):
    is_approved = serializers.BooleanField(default=True)
