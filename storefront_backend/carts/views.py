# carts/views.py
"""
CART API (buyer's active cart per store)

GET    /api/carts/<store_id>/         current cart
POST   /api/carts/<store_id>/items/   add {product_id, variant?, quantity}
DELETE /api/carts/<store_id>/         empty the cart
"""

from drf_spectacular.utils import extend_schema
from rest_framework import serializers, status
from rest_framework.parsers import JSONParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from carts.models import Cart, CartItem
from carts.services.cart_service import add_item, clear, get_active_cart
from orders.api.errors import DomainErrorMixin
from orders.services.exceptions import NotFoundError
from tenants.models import Store


class CartItemSerializer(serializers.ModelSerializer):
    product_id = serializers.UUIDField(read_only=True)
    product_name = serializers.CharField(source="product.name", read_only=True)
    unit_price = serializers.DecimalField(
        source="product.unit_price", max_digits=12, decimal_places=2, read_only=True
    )

    class Meta:
        model = CartItem
        fields = ["id", "product_id", "product_name", "variant", "quantity", "unit_price"]
        read_only_fields = fields


class CartSerializer(serializers.ModelSerializer):
    store_id = serializers.UUIDField(read_only=True)
    items = CartItemSerializer(many=True, read_only=True)
    item_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Cart
        fields = ["id", "store_id", "items", "item_count", "updated_at"]
        read_only_fields = fields


class AddCartItemSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    variant = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    quantity = serializers.IntegerField(min_value=1, default=1)


def _store_or_404(store_id) -> Store:
    store = Store.objects.filter(pk=store_id, is_active=True).first()
    if store is None:
        raise NotFoundError("Store not found")
    return store


class CartView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(responses={200: CartSerializer}, tags=["Carts"])
    def get(self, request, store_id):
        store = _store_or_404(store_id)
        cart = get_active_cart(buyer=request.user, store_id=store.id)
        return Response(CartSerializer(cart).data)

    @extend_schema(responses={204: None}, tags=["Carts"])
    def delete(self, request, store_id):
        store = _store_or_404(store_id)
        clear(get_active_cart(buyer=request.user, store_id=store.id))
        return Response(status=status.HTTP_204_NO_CONTENT)


class CartItemsView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated]
    parser_classes = [JSONParser]

    @extend_schema(request=AddCartItemSerializer, responses={201: CartSerializer}, tags=["Carts"])
    def post(self, request, store_id):
        s = AddCartItemSerializer(data=request.data)
        s.is_valid(raise_exception=True)

        store = _store_or_404(store_id)
        cart = get_active_cart(buyer=request.user, store_id=store.id)
        add_item(
            cart=cart,
            product_id=s.validated_data["product_id"],
            variant=s.validated_data.get("variant") or "",
            quantity=s.validated_data["quantity"],
        )
        return Response(CartSerializer(cart).data, status=status.HTTP_201_CREATED)
