"""
URL configuration for the marketplace project.

Every app mounts its routes under /api/v1/.
"""
from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "Farm to Home Admin Panel"
admin.site.site_title = "Farm to Home Admin Portal"
admin.site.index_title = "Welcome to the Farm to Home back office"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('marketplace.core.urls')),
    path('api/v1/', include('marketplace.catalog.urls')),
    path('api/v1/', include('marketplace.orders.urls')),
    path('api/v1/', include('marketplace.reports.urls')),
]
