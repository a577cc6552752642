"""
Authz URLs - session login/logout and current user
"""
from django.urls import path

from .views import LoginView, LogoutView, MeView

auth_urlpatterns = [
    path('login/', LoginView.as_view(), name='auth-login'),
    path('logout/', LogoutView.as_view(), name='auth-logout'),
]

urlpatterns = [
    path('me/', MeView.as_view(), name='me'),
]
