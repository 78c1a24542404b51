from django.urls import path
from .views import (
    product_list, product_detail, category_list,
    farmer_product_list_create, farmer_product_detail,
    admin_product_list, admin_product_detail, admin_product_approve,
)

urlpatterns = [
    # Public catalog
    path('products/', product_list, name='product-list'),
    path('products/categories/', category_list, name='product-categories'),
    path('products/<int:pk>/', product_detail, name='product-detail'),

    # Farmer product management
    path('farmer/products/', farmer_product_list_create, name='farmer-product-list-create'),
    path('farmer/products/<int:pk>/', farmer_product_detail, name='farmer-product-detail'),

    # Admin moderation
    path('admin/products/', admin_product_list, name='admin-product-list'),
    path('admin/products/<int:pk>/', admin_product_detail, name='admin-product-detail'),
    path('admin/products/<int:pk>/approve/', admin_product_approve, name='admin-product-approve'),
]
