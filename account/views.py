from django.contrib.auth import get_user_model
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import permissions, status
from rest_framework.generics import CreateAPIView, ListCreateAPIView, RetrieveUpdateAPIView
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import PaymentMethod
from .serializers import PaymentMethodSerializer, UserSerializer

User = get_user_model()


class RegisterUserView(CreateAPIView):
    queryset = User.objects.all()
    permission_classes = [permissions.AllowAny]
    serializer_class = UserSerializer


class CurrentUserView(RetrieveUpdateAPIView):
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = UserSerializer

    def get_object(self):
        return self.request.user


class PaymentMethodListCreateView(ListCreateAPIView):
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = PaymentMethodSerializer

    def get_queryset(self):
        return PaymentMethod.objects.filter(user=self.request.user).order_by("created_at")


class PaymentMethodVerifyView(APIView):
    permission_classes = [permissions.IsAdminUser]

    def post(self, request, pk):
        method = get_object_or_404(PaymentMethod, pk=pk)
        if not method.is_verified:
            method.is_verified = True
            method.verified_by = request.user
            method.verified_at = timezone.now()
            method.save(update_fields=["is_verified", "verified_by", "verified_at", "updated_at"])
        return Response(PaymentMethodSerializer(method).data, status=status.HTTP_200_OK)
