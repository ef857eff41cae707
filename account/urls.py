from django.urls import path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView
from .views import *

urlpatterns = [
    path("register/", RegisterUserView.as_view(), name="register"),
    path("login/", TokenObtainPairView.as_view(), name="login"),
    path("refresh/", TokenRefreshView.as_view(), name="refresh"),
    path("me/", CurrentUserView.as_view(), name="current-user"),
    path("payout-methods/", PaymentMethodListCreateView.as_view(), name="payout-methods"),
    path("payout-methods/<uuid:pk>/verify/", PaymentMethodVerifyView.as_view(), name="payout-method-verify"),
]
