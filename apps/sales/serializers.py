from rest_framework import serializers

from apps.customers.models import Customer
from apps.customers.serializers import CustomerSummarySerializer
from apps.orders.serializers import CounterOrderLineInputSerializer, OrderItemSerializer, OrderSerializer
from apps.sales.models import Payment, PaymentMethod, Sale, SaleReversal
from apps.sales.services import paid_amount, pending_balance


class PaymentSerializer(serializers.ModelSerializer):
    created_by_username = serializers.CharField(source="created_by.username", read_only=True, default=None)

    class Meta:
        model = Payment
        fields = ["id", "sale", "amount", "notes", "created_by", "created_by_username", "created_at"]
        read_only_fields = fields


class PaymentCreateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    notes = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")


class SaleSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source="order.customer_name", read_only=True)
    customer_phone = serializers.CharField(source="customer.phone", read_only=True, default=None)
    created_by_username = serializers.CharField(source="created_by.username", read_only=True, default=None)
    paid_amount = serializers.SerializerMethodField()
    pending_balance = serializers.SerializerMethodField()

    class Meta:
        model = Sale
        fields = [
            "id",
            "order",
            "customer",
            "customer_name",
            "customer_phone",
            "total",
            "discount",
            "payment_method",
            "is_paid",
            "total_cost",
            "total_profit",
            "loyalty_redeemed",
            "paid_amount",
            "pending_balance",
            "created_by",
            "created_by_username",
            "created_at",
        ]
        read_only_fields = fields

    def get_paid_amount(self, obj):
        return str(paid_amount(obj))

    def get_pending_balance(self, obj):
        return str(pending_balance(obj))


class SaleDetailSerializer(SaleSerializer):
    items = OrderItemSerializer(source="order.items", many=True, read_only=True)
    payments = PaymentSerializer(many=True, read_only=True)

    class Meta(SaleSerializer.Meta):
        fields = SaleSerializer.Meta.fields + ["items", "payments"]
        read_only_fields = fields


class SaleInvoiceSerializer(serializers.Serializer):
    """Data bundle an invoice is rendered from."""

    customer = CustomerSummarySerializer(allow_null=True)
    order = OrderSerializer()
    sale = SaleSerializer()
    items = OrderItemSerializer(many=True)
    payments = PaymentSerializer(many=True)

    @classmethod
    def bundle(cls, sale):
        order = sale.order
        return cls(
            {
                "customer": sale.customer,
                "order": order,
                "sale": sale,
                "items": order.items.all(),
                "payments": sale.payments.all(),
            }
        )


class SettleOrderSerializer(serializers.Serializer):
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices)
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    use_loyalty_discount = serializers.BooleanField(required=False, default=False)

    def validate(self, attrs):
        if attrs.get("use_loyalty_discount") and attrs.get("discount"):
            raise serializers.ValidationError(
                {"discount": "No puedes combinar un descuento manual con el descuento de lealtad."}
            )
        return attrs


class CounterSaleSerializer(SettleOrderSerializer):
    customer = serializers.PrimaryKeyRelatedField(queryset=Customer.objects.all(), required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    items = CounterOrderLineInputSerializer(many=True)

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError("Agrega al menos un producto.")
        return value


class SaleAdjustSerializer(serializers.Serializer):
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices, required=False)

    def validate(self, attrs):
        if "discount" not in attrs and "payment_method" not in attrs:
            raise serializers.ValidationError({"detail": "Envia discount o payment_method."})
        return attrs


class SaleReversalSerializer(serializers.ModelSerializer):
    actor_username = serializers.CharField(source="actor.username", read_only=True, default=None)

    class Meta:
        model = SaleReversal
        fields = [
            "id",
            "sale_id",
            "order_id",
            "customer_id",
            "sale_total",
            "payment_method",
            "paid_amount",
            "restocked_lines",
            "reason",
            "actor",
            "actor_username",
            "created_at",
        ]
        read_only_fields = fields
