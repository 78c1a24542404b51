from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from decimal import Decimal


class Product(models.Model):
    """Produce listed by a farmer"""
    CATEGORY_CHOICES = [
        ('vegetables', 'Vegetables'),
        ('fruits', 'Fruits'),
        ('grains', 'Grains'),
        ('dairy', 'Dairy'),
        ('meat', 'Meat'),
        ('herbs', 'Herbs'),
    ]

    UNIT_CHOICES = [
        ('kg', 'Kilogram'),
        ('lb', 'Pound'),
        ('piece', 'Piece'),
        ('bunch', 'Bunch'),
        ('dozen', 'Dozen'),
    ]

    farmer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='products')
    name = models.CharField(max_length=200, db_index=True)
    description = models.TextField()
    price = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal('0.00'))])
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES, db_index=True)
    unit = models.CharField(max_length=10, choices=UNIT_CHOICES)
    # Only field written by the order workflow
    stock = models.PositiveIntegerField(default=0)
    is_available = models.BooleanField(default=True)
    is_approved = models.BooleanField(default=False, db_index=True)
    is_organic = models.BooleanField(default=False)
    image = models.URLField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.get_unit_display()})"

    @property
    def is_purchasable(self):
        return self.is_available and self.is_approved

    class Meta:
        db_table = 'products'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['farmer', '-created_at'], name='idx_product_farmer_created'),
            models.Index(fields=['is_approved', 'is_available'], name='idx_product_listing'),
        ]
