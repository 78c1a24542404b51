from django.urls import path
from .views import (
    cart_detail, cart_item_detail,
    customer_order_list_create, customer_order_detail, customer_order_cancel, customer_order_return,
    farmer_order_list, farmer_order_detail, farmer_order_status,
    admin_order_list, admin_order_detail, admin_order_status, admin_order_resolve,
)

urlpatterns = [
    # Customer cart
    path('customer/cart/', cart_detail, name='cart-detail'),
    path('customer/cart/<int:item_id>/', cart_item_detail, name='cart-item-detail'),

    # Customer orders
    path('customer/orders/', customer_order_list_create, name='customer-order-list-create'),
    path('customer/orders/<int:pk>/', customer_order_detail, name='customer-order-detail'),
    path('customer/orders/<int:pk>/cancel/', customer_order_cancel, name='customer-order-cancel'),
    path('customer/orders/<int:pk>/return/', customer_order_return, name='customer-order-return'),

    # Farmer order handling
    path('farmer/orders/', farmer_order_list, name='farmer-order-list'),
    path('farmer/orders/<int:pk>/', farmer_order_detail, name='farmer-order-detail'),
    path('farmer/orders/<int:pk>/status/', farmer_order_status, name='farmer-order-status'),

    # Admin order management
    path('admin/orders/', admin_order_list, name='admin-order-list'),
    path('admin/orders/<int:pk>/', admin_order_detail, name='admin-order-detail'),
    path('admin/orders/<int:pk>/status/', admin_order_status, name='admin-order-status'),
    path('admin/orders/<int:pk>/resolve/', admin_order_resolve, name='admin-order-resolve'),
]
