from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from decimal import Decimal
from marketplace.catalog.models import Product


class Cart(models.Model):
    """A customer's pre-commit basket; created lazily and never deleted"""
    customer = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='cart')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Cart of {self.customer}"

    class Meta:
        db_table = 'carts'


class CartItem(models.Model):
    """Cart line; price is a display snapshot taken when the item was added"""
    cart = models.ForeignKey(Cart, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='cart_items')
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    price = models.DecimalField(max_digits=10, decimal_places=2)
    added_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'cart_items'
        ordering = ['added_at', 'id']
        constraints = [
            models.UniqueConstraint(fields=['cart', 'product'], name='uniq_cartitem_cart_product'),
            models.CheckConstraint(condition=models.Q(quantity__gte=1), name='cartitem_quantity_positive'),
        ]


class Order(models.Model):
    """Committed purchase; money fields are fixed at creation"""
    STATUS_PENDING = 'pending'
    STATUS_ACCEPTED = 'accepted'
    STATUS_PROCESSING = 'processing'
    STATUS_SHIPPED = 'shipped'
    STATUS_DELIVERED = 'delivered'
    STATUS_REJECTED = 'rejected'
    STATUS_CANCELLED = 'cancelled'
    STATUS_RETURN_REQUESTED = 'return_requested'
    STATUS_RESOLVED = 'resolved'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_ACCEPTED, 'Accepted'),
        (STATUS_PROCESSING, 'Processing'),
        (STATUS_SHIPPED, 'Shipped'),
        (STATUS_DELIVERED, 'Delivered'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_RETURN_REQUESTED, 'Return Requested'),
        (STATUS_RESOLVED, 'Resolved'),
    ]

    PAYMENT_METHOD_CHOICES = [
        ('card', 'Card'),
        ('upi', 'UPI'),
        ('wallet', 'Wallet'),
        ('cod', 'Cash on Delivery'),
    ]

    PAYMENT_STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('paid', 'Paid'),
        ('failed', 'Failed'),
        ('refunded', 'Refunded'),
    ]

    REFUND_METHOD_CHOICES = [
        ('original', 'Original Payment Method'),
        ('wallet', 'Wallet'),
        ('bank', 'Bank Transfer'),
    ]

    order_number = models.CharField(max_length=100, unique=True)
    customer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='orders')

    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    delivery_charges = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    taxes = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    total = models.DecimalField(max_digits=12, decimal_places=2)

    # Delivery address value object
    delivery_name = models.CharField(max_length=50)
    delivery_phone = models.CharField(max_length=15)
    delivery_street = models.CharField(max_length=200)
    delivery_city = models.CharField(max_length=50)
    delivery_state = models.CharField(max_length=50)
    delivery_pincode = models.CharField(max_length=6)
    delivery_landmark = models.CharField(max_length=100, blank=True)
    delivery_longitude = models.FloatField(null=True, blank=True)
    delivery_latitude = models.FloatField(null=True, blank=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, default='cod')
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default='pending')
    instructions = models.TextField(blank=True)

    expected_delivery_date = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    tracking_id = models.CharField(max_length=50, blank=True)
    delivery_partner = models.CharField(max_length=50, blank=True)

    cancellation_reason = models.TextField(blank=True)
    return_reason = models.TextField(blank=True)
    refund_method = models.CharField(max_length=20, choices=REFUND_METHOD_CHOICES, blank=True)
    bank_account_number = models.CharField(max_length=18, blank=True)
    bank_ifsc_code = models.CharField(max_length=11, blank=True)
    bank_account_holder = models.CharField(max_length=100, blank=True)
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'),
                                        validators=[MinValueValidator(Decimal('0.00'))])

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.order_number

    @property
    def delivery_address(self):
        address = {
            'name': self.delivery_name,
            'phone': self.delivery_phone,
            'street': self.delivery_street,
            'city': self.delivery_city,
            'state': self.delivery_state,
            'pincode': self.delivery_pincode,
        }
        if self.delivery_landmark:
            address['landmark'] = self.delivery_landmark
        if self.delivery_longitude is not None and self.delivery_latitude is not None:
            address['coordinates'] = [self.delivery_longitude, self.delivery_latitude]
        return address

    @property
    def has_bank_details(self):
        return bool(self.bank_account_number and self.bank_ifsc_code and self.bank_account_holder)

    class Meta:
        db_table = 'orders'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['customer', '-created_at'], name='idx_order_customer_created'),
            models.Index(fields=['status', '-created_at'], name='idx_order_status_created'),
        ]


class OrderItem(models.Model):
    """Snapshot of a product line at order time"""
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.SET_NULL, null=True, blank=True, related_name='order_items')
    farmer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='sold_items')
    product_name = models.CharField(max_length=200)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    unit = models.CharField(max_length=10)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        db_table = 'order_items'
        ordering = ['id']
        indexes = [
            models.Index(fields=['farmer', 'order'], name='idx_orderitem_farmer_order'),
        ]


class OrderStatusHistory(models.Model):
    """Append-only status ledger entry"""
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='status_history')
    status = models.CharField(max_length=20, choices=Order.STATUS_CHOICES)
    note = models.TextField(blank=True)
    updated_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='order_status_changes')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'order_status_history'
        ordering = ['created_at', 'id']
