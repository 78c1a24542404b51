from decimal import Decimal

from django.core.validators import RegexValidator
from rest_framework import serializers
from .models import Cart, CartItem, Order, OrderItem, OrderStatusHistory
from .services.cart import cart_totals

phone_validator = RegexValidator(r'^[6-9]\d{9}$', 'Enter a valid 10-digit mobile number')
pincode_validator = RegexValidator(r'^\d{6}$', 'Pincode must be 6 digits')
ifsc_validator = RegexValidator(r'^[A-Z]{4}0[A-Z0-9]{6}$', 'Enter a valid IFSC code')


class CartItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    product_unit = serializers.CharField(source='product.unit', read_only=True)
    product_image = serializers.CharField(source='product.image', read_only=True)
    product_stock = serializers.IntegerField(source='product.stock', read_only=True)
    farmer_name = serializers.SerializerMethodField()
    line_total = serializers.SerializerMethodField()

    def get_farmer_name(self, obj):
        farmer = obj.product.farmer
        return farmer.get_full_name() or farmer.username

    def get_line_total(self, obj):
        return str(obj.price * obj.quantity)

    class Meta:
        model = CartItem
        fields = ['id', 'product', 'product_name', 'product_unit', 'product_image', 'product_stock',
                  'farmer_name', 'quantity', 'price', 'line_total', 'added_at']
        read_only_fields = fields


class CartSerializer(serializers.ModelSerializer):
    items = serializers.SerializerMethodField()
    total_items = serializers.SerializerMethodField()
    total = serializers.SerializerMethodField()

    def get_items(self, obj):
        items = obj.items.select_related('product', 'product__farmer')
        return CartItemSerializer(items, many=True).data

    def get_total_items(self, obj):
        return cart_totals(obj)['total_items']

    def get_total(self, obj):
        return str(cart_totals(obj)['total'])

    class Meta:
        model = Cart
        fields = ['id', 'items', 'total_items', 'total', 'updated_at']


class CartAddSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1, default=1)


class CartUpdateSerializer(serializers.Serializer):
    # Zero or less removes the line
    quantity = serializers.IntegerField()


class OrderItemSerializer(serializers.ModelSerializer):
    farmer_name = serializers.SerializerMethodField()

    def get_farmer_name(self, obj):
        return obj.farmer.get_full_name() or obj.farmer.username

    class Meta:
        model = OrderItem
        fields = ['id', 'product', 'product_name', 'farmer', 'farmer_name', 'price', 'quantity', 'unit', 'subtotal']
        read_only_fields = fields


class OrderStatusHistorySerializer(serializers.ModelSerializer):
    updated_by_name = serializers.CharField(source='updated_by.username', read_only=True, default=None)

    class Meta:
        model = OrderStatusHistory
        fields = ['id', 'status', 'note', 'updated_by', 'updated_by_name', 'created_at']
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    status_history = OrderStatusHistorySerializer(many=True, read_only=True)
    delivery_address = serializers.DictField(read_only=True)
    customer_name = serializers.CharField(source='customer.username', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'customer', 'customer_name', 'items',
            'subtotal', 'delivery_charges', 'taxes', 'total',
            'delivery_address', 'status', 'status_display', 'payment_method', 'payment_status',
            'instructions', 'expected_delivery_date', 'delivered_at', 'tracking_id', 'delivery_partner',
            'cancellation_reason', 'return_reason', 'refund_method', 'refund_amount',
            'status_history', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight order row for list endpoints"""
    item_count = serializers.IntegerField(source='items.count', read_only=True)

    class Meta:
        model = Order
        fields = ['id', 'order_number', 'customer', 'status', 'payment_method', 'payment_status',
                  'total', 'item_count', 'created_at']
        read_only_fields = fields


class DeliveryAddressSerializer(serializers.Serializer):
    name = serializers.CharField(min_length=2, max_length=50)
    phone = serializers.CharField(validators=[phone_validator])
    street = serializers.CharField(min_length=5, max_length=200)
    city = serializers.CharField(min_length=2, max_length=50)
    state = serializers.CharField(min_length=2, max_length=50)
    pincode = serializers.CharField(validators=[pincode_validator])
    landmark = serializers.CharField(max_length=100, required=False, allow_blank=True)
    coordinates = serializers.ListField(
        child=serializers.FloatField(), min_length=2, max_length=2, required=False,
    )

    def validate_coordinates(self, value):
        longitude, latitude = value
        if not -180 <= longitude <= 180 or not -90 <= latitude <= 90:
            raise serializers.ValidationError('Coordinates must be [longitude, latitude]')
        return value


class PlaceOrderSerializer(serializers.Serializer):
    delivery_address = DeliveryAddressSerializer()
    payment_method = serializers.ChoiceField(choices=Order.PAYMENT_METHOD_CHOICES, default='cod')
    instructions = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')
    expected_delivery_date = serializers.DateTimeField(required=False, allow_null=True, default=None)


class StatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.STATUS_CHOICES)
    note = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')
    tracking_id = serializers.CharField(max_length=50, required=False, allow_blank=True)
    delivery_partner = serializers.CharField(max_length=50, required=False, allow_blank=True)
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True)


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(min_length=5, max_length=500)


class BankDetailsSerializer(serializers.Serializer):
    account_number = serializers.RegexField(r'^\d{9,18}$', error_messages={'invalid': 'Enter a valid account number'})
    ifsc_code = serializers.CharField(validators=[ifsc_validator])
    account_holder_name = serializers.CharField(min_length=2, max_length=100)


class ReturnRequestSerializer(serializers.Serializer):
    reason = serializers.CharField(min_length=10, max_length=500)
    refund_method = serializers.ChoiceField(choices=Order.REFUND_METHOD_CHOICES, default='original')
    bank_details = BankDetailsSerializer(required=False)


class ResolveReturnSerializer(serializers.Serializer):
    approved = serializers.BooleanField(default=True)
    refund_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.00'), required=False,
                                             allow_null=True, default=None)
    note = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')
