"""
URL configuration for the split-sheet backend.

Every app mounts its own router under /api/v1/.
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),

    # Session auth for the browsable API
    path('api-auth/', include('rest_framework.urls')),

    # Invites, role upgrades, org directories and profiles
    path('api/v1/', include('accounts.urls')),

    # Split sheets (create, edit, finalize, dispute, notify, delete)
    path('api/v1/', include('splits.urls')),

    # In-app notifications
    path('api/v1/', include('notifications.urls')),

    # Account deletion jobs
    path('api/v1/', include('account_deletion.urls')),
]
