from django.contrib import admin
from .models import Product


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['name', 'farmer', 'category', 'price', 'unit', 'stock', 'is_available', 'is_approved', 'created_at']
    list_filter = ['category', 'is_approved', 'is_available', 'is_organic', 'created_at']
    search_fields = ['name', 'description', 'farmer__username']
    ordering = ['-created_at']
    list_editable = ['is_approved']
    readonly_fields = ['created_at', 'updated_at']
