from rest_framework import serializers

from apps.customers.models import MIN_PHONE_DIGITS, normalize_phone
from apps.storefront.models import ProductRequest, SiteSetting


class ProductRequestSerializer(serializers.ModelSerializer):
    class Meta:
        model = ProductRequest
        fields = ["id", "customer_name", "whatsapp", "product_name", "product_link", "notes", "created_at"]
        read_only_fields = ["id", "created_at"]

    def validate_customer_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Indica tu nombre.")
        return value

    def validate_product_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Indica el producto que buscas.")
        return value

    def validate_whatsapp(self, value):
        if len(normalize_phone(value)) < MIN_PHONE_DIGITS:
            raise serializers.ValidationError(f"El numero debe tener al menos {MIN_PHONE_DIGITS} digitos.")
        return value.strip()


class SiteSettingSerializer(serializers.ModelSerializer):
    class Meta:
        model = SiteSetting
        fields = ["key", "value", "category", "description", "updated_at"]
        read_only_fields = ["updated_at"]

    def validate_key(self, value):
        if self.instance is not None and value != self.instance.key:
            raise serializers.ValidationError("La clave de un ajuste no se puede cambiar.")
        return value


class SiteSettingEntrySerializer(serializers.Serializer):
    key = serializers.SlugField(max_length=80)
    value = serializers.CharField(allow_blank=True)
    category = serializers.CharField(max_length=40, required=False, allow_blank=True)
    description = serializers.CharField(max_length=255, required=False, allow_blank=True)


class SiteSettingBulkSerializer(serializers.Serializer):
    settings = SiteSettingEntrySerializer(many=True)

    def validate_settings(self, value):
        if not value:
            raise serializers.ValidationError("Envia al menos un ajuste.")
        keys = [entry["key"] for entry in value]
        if len(keys) != len(set(keys)):
            raise serializers.ValidationError("Cada clave puede aparecer una sola vez.")
        return value
