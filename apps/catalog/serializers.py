from django.db import transaction
from rest_framework import serializers

from apps.catalog.models import Category, ComboPack, Product, Promotion, PromotionProduct, PromotionType
from apps.catalog.promotions import current_promotion_line, is_bogo_line, promotional_price
from apps.inventory.services import set_stock


class CategorySerializer(serializers.ModelSerializer):
    class Meta:
        model = Category
        fields = ["id", "name", "image_url", "is_featured", "created_at"]
        read_only_fields = ["id", "created_at"]


class ProductSerializer(serializers.ModelSerializer):
    stock = serializers.IntegerField(required=False, min_value=0)
    stock_adjust_reason = serializers.CharField(write_only=True, required=False, allow_blank=True)
    category_name = serializers.CharField(source="category.name", read_only=True, default=None)

    class Meta:
        model = Product
        fields = [
            "id",
            "name",
            "description",
            "price",
            "cost",
            "stock",
            "stock_adjust_reason",
            "category",
            "category_name",
            "image_url",
            "is_new_arrival",
            "is_coming_soon",
            "is_gift_option",
            "is_bogo",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]

    def validate_price(self, value):
        if value < 0:
            raise serializers.ValidationError("El precio debe ser mayor o igual a 0.")
        return value

    def validate_cost(self, value):
        if value < 0:
            raise serializers.ValidationError("El costo debe ser mayor o igual a 0.")
        return value

    def _apply_stock(self, product, target_stock, reason, reference_type):
        if target_stock is None:
            return
        set_stock(
            product=product,
            target_stock=target_stock,
            reason=reason,
            actor=self.context["request"].user,
            reference_type=reference_type,
        )
        product.refresh_from_db(fields=["stock"])

    def create(self, validated_data):
        target_stock = validated_data.pop("stock", None)
        reason = validated_data.pop("stock_adjust_reason", "") or "Inventario inicial"

        with transaction.atomic():
            product = super().create(validated_data)
            self._apply_stock(product, target_stock, reason, "product_create_adjustment")
        return product

    def update(self, instance, validated_data):
        target_stock = validated_data.pop("stock", None)
        reason = validated_data.pop("stock_adjust_reason", "")

        with transaction.atomic():
            product = super().update(instance, validated_data)
            self._apply_stock(product, target_stock, reason, "manual_stock_adjustment")
        return product


class PublicCatalogProductSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source="category.name", read_only=True, default=None)
    in_stock = serializers.SerializerMethodField()
    price = serializers.SerializerMethodField()
    original_price = serializers.SerializerMethodField()
    promo_badge = serializers.SerializerMethodField()
    is_bogo = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = [
            "id",
            "name",
            "description",
            "price",
            "original_price",
            "promo_badge",
            "category",
            "category_name",
            "image_url",
            "is_new_arrival",
            "is_coming_soon",
            "is_gift_option",
            "is_bogo",
            "in_stock",
            "updated_at",
        ]
        read_only_fields = fields

    def get_in_stock(self, obj):
        return obj.stock > 0

    def get_price(self, obj):
        return str(promotional_price(obj, current_promotion_line(obj)))

    def get_original_price(self, obj):
        price = promotional_price(obj, current_promotion_line(obj))
        return str(obj.price) if price != obj.price else None

    def get_promo_badge(self, obj):
        line = current_promotion_line(obj)
        return line.promotion.badge if line else None

    def get_is_bogo(self, obj):
        return obj.is_bogo or is_bogo_line(current_promotion_line(obj))


class ComboPackSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source="category.name", read_only=True)

    class Meta:
        model = ComboPack
        fields = ["id", "category", "category_name", "label", "units", "price", "is_active"]
        read_only_fields = ["id", "category_name"]

    def validate_units(self, value):
        if value < 1:
            raise serializers.ValidationError("Un combo debe tener al menos 1 unidad.")
        return value

    def validate_price(self, value):
        if value <= 0:
            raise serializers.ValidationError("El precio del combo debe ser mayor a 0.")
        return value


class PromotionProductSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source="product.name", read_only=True)
    regular_price = serializers.DecimalField(source="product.price", max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = PromotionProduct
        fields = ["product", "product_name", "regular_price", "promo_price"]

    def validate_promo_price(self, value):
        if value is not None and value < 0:
            raise serializers.ValidationError("El precio promocional debe ser mayor o igual a 0.")
        return value


class PromotionSerializer(serializers.ModelSerializer):
    lines = PromotionProductSerializer(many=True)
    badge = serializers.CharField(read_only=True)

    class Meta:
        model = Promotion
        fields = [
            "id",
            "title",
            "description",
            "discount_badge",
            "badge",
            "promo_type",
            "image_url",
            "start_date",
            "end_date",
            "is_active",
            "lines",
            "created_at",
        ]
        read_only_fields = ["id", "badge", "created_at"]

    def validate(self, attrs):
        start_date = attrs.get("start_date", getattr(self.instance, "start_date", None))
        end_date = attrs.get("end_date", getattr(self.instance, "end_date", None))
        if start_date and end_date and end_date < start_date:
            raise serializers.ValidationError({"end_date": "La fecha final no puede ser anterior a la inicial."})

        lines = attrs.get("lines")
        if lines is not None:
            if not lines:
                raise serializers.ValidationError({"lines": "Selecciona al menos un producto."})
            product_ids = [line["product"].id for line in lines]
            if len(product_ids) != len(set(product_ids)):
                raise serializers.ValidationError({"lines": "Un producto solo puede aparecer una vez."})

            promo_type = attrs.get("promo_type", getattr(self.instance, "promo_type", PromotionType.DISCOUNT))
            if promo_type == PromotionType.DISCOUNT:
                missing = [line["product"].name for line in lines if line.get("promo_price") is None]
                if missing:
                    raise serializers.ValidationError(
                        {"lines": f"Indica el precio promocional de: {', '.join(missing)}."}
                    )
        return attrs

    def _replace_lines(self, promotion, lines):
        promotion.lines.all().delete()
        PromotionProduct.objects.bulk_create(
            PromotionProduct(
                promotion=promotion,
                product=line["product"],
                promo_price=None if promotion.promo_type == PromotionType.BOGO else line.get("promo_price"),
            )
            for line in lines
        )

    def create(self, validated_data):
        lines = validated_data.pop("lines")
        with transaction.atomic():
            promotion = Promotion.objects.create(**validated_data)
            self._replace_lines(promotion, lines)
        return promotion

    def update(self, instance, validated_data):
        lines = validated_data.pop("lines", None)
        with transaction.atomic():
            promotion = super().update(instance, validated_data)
            if lines is not None:
                self._replace_lines(promotion, lines)
        return promotion
