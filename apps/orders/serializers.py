from rest_framework import serializers

from apps.catalog.models import ComboPack, Product
from apps.customers.models import MIN_PHONE_DIGITS, Customer, normalize_phone
from apps.customers.serializers import CustomerSummarySerializer
from apps.orders.models import DeliveryMode, Order, OrderItem


class OrderItemSerializer(serializers.ModelSerializer):
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    stock_units = serializers.IntegerField(read_only=True)

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product",
            "name",
            "quantity",
            "unit_price",
            "unit_cost",
            "is_combo",
            "combo_multiplier",
            "is_bogo",
            "stock_units",
            "line_total",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    customer_name = serializers.CharField(read_only=True)
    customer_summary = CustomerSummarySerializer(source="customer", read_only=True)
    created_by_username = serializers.CharField(source="created_by.username", read_only=True, default=None)
    sale_id = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id",
            "customer",
            "customer_name",
            "customer_summary",
            "status",
            "delivery_mode",
            "delivery_fee",
            "subtotal",
            "total",
            "client_email",
            "city",
            "department",
            "address",
            "notes",
            "created_by",
            "created_by_username",
            "created_at",
            "items",
            "sale_id",
        ]
        read_only_fields = fields

    def get_sale_id(self, obj):
        sale = getattr(obj, "sale", None)
        return str(sale.id) if sale else None


class OrderLineInputSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    quantity = serializers.IntegerField(min_value=1)
    combo_pack = serializers.PrimaryKeyRelatedField(queryset=ComboPack.objects.all(), required=False, allow_null=True)


class CounterOrderLineInputSerializer(OrderLineInputSerializer):
    combo_multiplier = serializers.IntegerField(min_value=1, required=False)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)


class StorefrontCheckoutSerializer(serializers.Serializer):
    first_name = serializers.CharField(max_length=120)
    last_name = serializers.CharField(max_length=120, required=False, allow_blank=True, default="")
    phone = serializers.CharField(max_length=50)
    email = serializers.EmailField(required=False, allow_blank=True, default="")
    address = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    city = serializers.CharField(max_length=120, required=False, allow_blank=True, default="")
    department = serializers.CharField(max_length=120, required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    delivery_mode = serializers.ChoiceField(choices=[DeliveryMode.DOMICILIO, DeliveryMode.PICKUP])
    items = OrderLineInputSerializer(many=True)

    def validate_phone(self, value):
        if len(normalize_phone(value)) < MIN_PHONE_DIGITS:
            raise serializers.ValidationError(f"El telefono debe tener al menos {MIN_PHONE_DIGITS} digitos.")
        return value.strip()

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError("El carrito esta vacio.")
        return value

    def validate(self, attrs):
        if attrs["delivery_mode"] == DeliveryMode.DOMICILIO and not attrs.get("address", "").strip():
            raise serializers.ValidationError({"address": "La direccion es obligatoria para envios a domicilio."})
        return attrs


class CounterOrderSerializer(serializers.Serializer):
    customer = serializers.PrimaryKeyRelatedField(queryset=Customer.objects.all(), required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    items = CounterOrderLineInputSerializer(many=True)

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError("Agrega al menos un producto.")
        return value
