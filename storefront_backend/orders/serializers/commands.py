# orders/serializers/commands.py

from rest_framework import serializers

from orders.models import OrderStatus, PaymentStatus


class AddressSerializer(serializers.Serializer):
    recipient_name = serializers.CharField(max_length=120)
    line1 = serializers.CharField(max_length=255)
    city = serializers.CharField(max_length=120)
    state = serializers.CharField(max_length=120, required=False, allow_blank=True, default="")
    postal_code = serializers.CharField(max_length=20)
    country = serializers.CharField(max_length=2, required=False, default="AR")
    phone = serializers.CharField(max_length=40)


class CheckoutLineSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    variant = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    quantity = serializers.IntegerField(min_value=1)
    # Honored only for staff with the price override capability.
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=0)


class CheckoutInputSerializer(serializers.Serializer):
    store_id = serializers.UUIDField()
    # Omit to check out the buyer's active cart for this store.
    items = CheckoutLineSerializer(many=True, required=False)
    shipping_address = AddressSerializer()
    payment_method = serializers.CharField(max_length=32, required=False, default="mercadopago")
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=0)
    notes = serializers.CharField(required=False, allow_blank=True, default="")

    def validate_items(self, value):
        if value is not None and len(value) == 0:
            raise serializers.ValidationError("At least one item is required")
        return value


class StatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    note = serializers.CharField(required=False, allow_blank=True, default="")


class PaymentStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=PaymentStatus.choices)
    transaction_id = serializers.CharField(max_length=128, required=False, allow_blank=True, default="")
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=0)
    note = serializers.CharField(required=False, allow_blank=True, default="")
