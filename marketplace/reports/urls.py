from django.urls import path
from . import views

urlpatterns = [
    path('farmer/analytics/', views.farmer_analytics, name='farmer-analytics'),
    path('admin/analytics/', views.platform_analytics, name='platform-analytics'),
]
