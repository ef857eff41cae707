from rest_framework import serializers

from account.models import Wallet
from .models import Commission, ContentFormat, ItemType, Payment, Payout, Purchase


class PurchaseInitiateSerializer(serializers.Serializer):
    item_type = serializers.ChoiceField(choices=ItemType.choices)
    item_id = serializers.UUIDField()
    format = serializers.ChoiceField(choices=ContentFormat.choices, default=ContentFormat.PDF)
    gateway = serializers.ChoiceField(choices=[("jazzcash", "JazzCash"), ("safepay", "Safepay")], default="jazzcash")
    return_url = serializers.URLField(required=False, allow_blank=True)


class PaymentSerializer(serializers.ModelSerializer):
    item_id = serializers.SerializerMethodField()

    class Meta:
        model = Payment
        fields = [
            "id",
            "item_type",
            "item_id",
            "format",
            "amount",
            "currency",
            "gateway",
            "transaction_ref",
            "status",
            "earnings_status",
            "created_at",
            "updated_at",
        ]

    def get_item_id(self, obj):
        item = obj.item
        return str(item.pk) if item else None


class PurchaseSerializer(serializers.ModelSerializer):
    item_id = serializers.SerializerMethodField()
    item_title = serializers.SerializerMethodField()

    class Meta:
        model = Purchase
        fields = [
            "id",
            "item_type",
            "item_id",
            "item_title",
            "format",
            "amount",
            "payment_method",
            "payment_status",
            "transaction_id",
            "created_at",
        ]

    def get_item_id(self, obj):
        item = obj.item
        return str(item.pk) if item else None

    def get_item_title(self, obj):
        item = obj.item
        return item.title if item else None


class WalletSettingsSerializer(serializers.ModelSerializer):
    class Meta:
        model = Wallet
        fields = ["auto_payout", "payout_method", "payout_schedule", "minimum_payout"]

    def validate_minimum_payout(self, value):
        if value <= 0:
            raise serializers.ValidationError("minimum_payout must be greater than 0")
        return value


class CommissionSerializer(serializers.ModelSerializer):
    seller_email = serializers.EmailField(source="seller.email", read_only=True)
    buyer_email = serializers.EmailField(source="buyer.email", read_only=True)
    item_id = serializers.SerializerMethodField()
    item_title = serializers.SerializerMethodField()
    payout_status = serializers.SerializerMethodField()

    class Meta:
        model = Commission
        fields = [
            "id",
            "payment",
            "seller_email",
            "buyer_email",
            "item_type",
            "item_id",
            "item_title",
            "seller_type",
            "total_amount",
            "seller_amount",
            "platform_amount",
            "percentage",
            "status",
            "payout",
            "payout_status",
            "processed_at",
            "paid_out_at",
            "created_at",
        ]

    def _item(self, obj):
        return obj.book if obj.item_type == ItemType.BOOK else obj.judgment

    def get_item_id(self, obj):
        item = self._item(obj)
        return str(item.pk) if item else None

    def get_item_title(self, obj):
        item = self._item(obj)
        return item.title if item else None

    def get_payout_status(self, obj):
        return obj.payout.status if obj.payout_id else None


class PayoutSerializer(serializers.ModelSerializer):
    user_email = serializers.EmailField(source="user.email", read_only=True)
    commission_count = serializers.SerializerMethodField()

    class Meta:
        model = Payout
        fields = [
            "id",
            "user",
            "user_email",
            "amount",
            "payment_method",
            "recipient_details",
            "status",
            "is_automatic",
            "internal_ref",
            "external_ref",
            "failure_reason",
            "retry_count",
            "processed_at",
            "completed_at",
            "proof_reference",
            "proof_url",
            "notes",
            "commission_count",
            "created_at",
            "updated_at",
        ]

    def get_commission_count(self, obj):
        return obj.commissions.count()


class PayoutRejectSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500)


class PayoutCompleteSerializer(serializers.Serializer):
    transaction_ref = serializers.CharField(max_length=150)
    receipt_url = serializers.URLField(required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class PayoutTriggerSerializer(serializers.Serializer):
    schedule = serializers.ChoiceField(choices=Wallet.PayoutSchedule.choices, required=False, allow_null=True)


class SaleSerializer(PurchaseSerializer):
    buyer_email = serializers.EmailField(source="user.email", read_only=True)

    class Meta(PurchaseSerializer.Meta):
        fields = PurchaseSerializer.Meta.fields + ["buyer_email", "seller_amount", "platform_amount", "earnings_status"]


class PurchaseCheckSerializer(serializers.Serializer):
    item_type = serializers.ChoiceField(choices=ItemType.choices)
    item_id = serializers.UUIDField()
    format = serializers.ChoiceField(choices=ContentFormat.choices, required=False)

