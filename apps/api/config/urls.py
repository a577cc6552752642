"""
URL configuration for MediBook API project.
"""
from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import (
    SpectacularAPIView,
    SpectacularRedocView,
    SpectacularSwaggerView,
)
from apps.authz.urls import auth_urlpatterns
from apps.core.observability.health import HealthzView, ReadyzView
from apps.core.views import MetricsView

urlpatterns = [
    # Health checks and metrics (no auth required)
    path('healthz', HealthzView.as_view(), name='healthz'),
    path('readyz', ReadyzView.as_view(), name='readyz'),
    path('metrics', MetricsView.as_view(), name='metrics'),

    # Admin
    path('admin/', admin.site.urls),

    # Session login / logout
    path('api/auth/', include(auth_urlpatterns)),

    # Private API (authentication required)
    path('api/v1/', include('apps.authz.urls')),  # Current user
    path('api/v1/chat/', include('apps.chat.urls')),  # Conversations, messages, relay auth

    # API Schema
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/schema/swagger-ui/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
    path('api/schema/redoc/', SpectacularRedocView.as_view(url_name='schema'), name='redoc'),
]
