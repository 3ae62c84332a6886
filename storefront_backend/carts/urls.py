# carts/urls.py

from django.urls import path

from carts.views import CartItemsView, CartView

urlpatterns = [
    path("<uuid:store_id>/", CartView.as_view(), name="cart-detail"),
    path("<uuid:store_id>/items/", CartItemsView.as_view(), name="cart-items"),
]
