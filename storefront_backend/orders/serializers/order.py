# orders/serializers/order.py

from rest_framework import serializers

from orders.models import Order, OrderItem, OrderStatusHistory, PaymentHistory


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = [
            "product_id",
            "product_name",
            "variant",
            "quantity",
            "unit_price",
            "line_subtotal",
        ]
        read_only_fields = fields


class OrderStatusHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderStatusHistory
        fields = ["status", "actor", "note", "created_at"]
        read_only_fields = fields


class PaymentHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = PaymentHistory
        fields = ["payment_status", "amount", "provider_transaction_id", "note", "created_at"]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """
    Read model. Orders are only written through the checkout orchestrator
    and the order repository.
    """

    store_id = serializers.UUIDField(read_only=True)
    buyer_id = serializers.UUIDField(read_only=True)
    shipping_address = serializers.DictField(read_only=True)
    items = OrderItemSerializer(many=True, read_only=True)
    status_history = OrderStatusHistorySerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_code",
            "store_id",
            "buyer_id",
            "status",
            "payment_status",
            "payment_method",
            "currency",
            "subtotal",
            "tax",
            "shipping_cost",
            "discount",
            "total",
            "shipping_address",
            "items",
            "status_history",
            "payment_redirect_url",
            "notes",
            "version",
            "created_at",
            "updated_at",
            "delivered_at",
        ]
        read_only_fields = fields


class OrderPaymentStatusSerializer(serializers.ModelSerializer):
    order_id = serializers.UUIDField(source="id", read_only=True)
    payment_history = PaymentHistorySerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "order_id",
            "order_code",
            "status",
            "payment_status",
            "payment_method",
            "total",
            "provider_intent_id",
            "provider_payment_id",
            "provider_status",
            "provider_status_detail",
            "provider_payment_type",
            "external_reference",
            "installments",
            "last_synced_amount",
            "payment_redirect_url",
            "paid_at",
            "payment_history",
        ]
        read_only_fields = fields
