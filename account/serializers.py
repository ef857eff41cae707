from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.utils import timezone
from rest_framework import serializers
from rest_framework.serializers import ModelSerializer

from .models import PaymentMethod, Wallet, mobile_wallet_number_validator

User = get_user_model()


class UserSerializer(ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'first_name', 'last_name', 'email', 'phone_number', 'role', 'created_at', 'updated_at', 'password']
        extra_kwargs = {
            'password': {'write_only': True},}
        read_only_fields = ('id', 'role', 'created_at', 'updated_at')

    def create(self, validated_data):
        password = validated_data.pop('password', None)
        user = super().create(validated_data)
        if password:
            user.set_password(password)
            user.role = User.Role.CUSTOMER
            user.save()
        return user


class PaymentMethodSerializer(ModelSerializer):
    class Meta:
        model = PaymentMethod
        fields = [
            "id",
            "payment_type",
            "phone_number",
            "account_title",
            "account_number",
            "bank_name",
            "iban",
            "is_verified",
            "verified_at",
            "created_at",
        ]
        read_only_fields = ("id", "is_verified", "verified_at", "created_at")

    def validate(self, attrs):
        payment_type = attrs.get("payment_type")
        phone_number = attrs.get("phone_number")

        if payment_type == PaymentMethod.Type.BANK:
            missing = [f for f in ("account_title", "account_number", "bank_name") if not attrs.get(f)]
            if missing:
                raise serializers.ValidationError({f: "This field is required for bank accounts." for f in missing})
        elif payment_type in [PaymentMethod.Type.JAZZCASH, PaymentMethod.Type.EASYPAISA]:
            if not phone_number:
                raise serializers.ValidationError({"phone_number": "Phone number is required for this payment type."})
            try:
                mobile_wallet_number_validator(phone_number)
            except DjangoValidationError:
                raise serializers.ValidationError(
                    {"phone_number": "Enter a valid mobile wallet number (03XXXXXXXXX)."}
                )
            taken = PaymentMethod.objects.filter(payment_type=payment_type, phone_number=phone_number)
            request = self.context.get("request")
            if request is not None:
                taken = taken.exclude(user=request.user)
            if taken.exists():
                raise serializers.ValidationError({"phone_number": "This number is already connected to another account."})

        return attrs

    def create(self, validated_data):
        # Always assign the owner from the logged-in user
        user = self.context['request'].user

        if not user.is_seller:
            raise serializers.ValidationError("Only sellers can add payout methods.")
        if PaymentMethod.objects.filter(user=user, payment_type=validated_data["payment_type"]).exists():
            raise serializers.ValidationError({"payment_type": "A payout method of this type already exists."})

        validated_data['user'] = user
        if user.is_platform_admin:
            validated_data["is_verified"] = True
            validated_data["verified_by"] = user
            validated_data["verified_at"] = timezone.now()
        return super().create(validated_data)


class WalletSerializer(ModelSerializer):
    class Meta:
        model = Wallet
        fields = [
            "available_balance",
            "total_earnings",
            "total_withdrawn",
            "last_payout_date",
            "auto_payout",
            "payout_method",
            "payout_schedule",
            "minimum_payout",
        ]
        read_only_fields = ("available_balance", "total_earnings", "total_withdrawn", "last_payout_date")
