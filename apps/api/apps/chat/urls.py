"""
Chat URLs - conversations, messages, relay handshake
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import ConversationViewSet, RelayAuthView, RelayConfigView

router = DefaultRouter()
router.register(r'conversations', ConversationViewSet, basename='conversation')

urlpatterns = [
    path('', include(router.urls)),
    path('relay/auth', RelayAuthView.as_view(), name='relay-auth'),
    path('relay/config', RelayConfigView.as_view(), name='relay-config'),
]
