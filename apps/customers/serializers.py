from rest_framework import serializers

from apps.customers.models import MIN_PHONE_DIGITS, Customer, LoyaltyEvent, normalize_phone


class CustomerSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = Customer
        fields = [
            "id",
            "first_name",
            "last_name",
            "full_name",
            "phone",
            "email",
            "address",
            "loyalty_stamps",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "full_name", "loyalty_stamps", "created_at", "updated_at"]

    def validate_phone(self, value):
        normalized = normalize_phone(value)
        if len(normalized) < MIN_PHONE_DIGITS:
            raise serializers.ValidationError(f"El telefono debe tener al menos {MIN_PHONE_DIGITS} digitos.")
        duplicates = Customer.objects.filter(phone_normalized=normalized)
        if self.instance is not None:
            duplicates = duplicates.exclude(pk=self.instance.pk)
        if duplicates.exists():
            raise serializers.ValidationError("Ya existe un cliente con ese telefono.")
        return value.strip()


class CustomerSummarySerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = Customer
        fields = ["id", "first_name", "last_name", "full_name", "phone", "address", "loyalty_stamps"]
        read_only_fields = fields


class LoyaltyEventSerializer(serializers.ModelSerializer):
    class Meta:
        model = LoyaltyEvent
        fields = ["id", "event_type", "sale_id", "stamps_after", "created_at"]
        read_only_fields = fields
