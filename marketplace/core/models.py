from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Marketplace account: customer, farmer or admin"""
    ROLE_CUSTOMER = 'customer'
    ROLE_FARMER = 'farmer'
    ROLE_ADMIN = 'admin'

    ROLE_CHOICES = [
        (ROLE_CUSTOMER, 'Customer'),
        (ROLE_FARMER, 'Farmer'),
        (ROLE_ADMIN, 'Admin'),
    ]

    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_CUSTOMER, db_index=True)
    phone = models.CharField(max_length=20, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def is_customer(self):
        return self.role == self.ROLE_CUSTOMER

    @property
    def is_farmer(self):
        return self.role == self.ROLE_FARMER

    @property
    def is_marketplace_admin(self):
        # Django superusers manage the back office even without the admin role
        return self.role == self.ROLE_ADMIN or self.is_superuser

    class Meta:
        db_table = 'users'


class AuditLog(models.Model):
    """Audit log for cart, order and catalog operations"""
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('cart_add', 'Add to Cart'),
        ('cart_update', 'Cart Update'),
        ('cart_remove', 'Remove from Cart'),
        ('cart_clear', 'Cart Cleared'),
        ('order_place', 'Order Placed'),
        ('order_cancel', 'Order Cancelled'),
        ('order_status', 'Order Status Changed'),
        ('order_return', 'Return Requested'),
        ('order_resolve', 'Return Resolved'),
        ('product_approve', 'Product Approval Changed'),
        ('user_ban', 'User Ban Changed'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    model_name = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    object_name = models.CharField(max_length=255, blank=True, null=True, help_text="Human-readable name of the object (e.g., product name, order number)")
    object_reference = models.CharField(max_length=255, blank=True, null=True, help_text="Reference identifier (e.g., order number)")
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='idx_audit_created'),
            models.Index(fields=['action'], name='idx_audit_action'),
            models.Index(fields=['model_name'], name='idx_audit_model'),
            models.Index(fields=['object_reference'], name='idx_audit_reference'),
        ]
