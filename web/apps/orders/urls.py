from django.urls import path
from .views import OrdersPingView
from .views import OrdersCollectionView, BuyerOrdersView, SellerOrdersView
from .views import RetrieveOrderView, OrderStatusView, ConfirmPaymentView
app_name = "orders"

urlpatterns = [
    path("ping/", OrdersPingView.as_view(), name="ping"),
    path("", OrdersCollectionView.as_view(), name="orders-collection"),  # GET admin list / POST create
    path("mine/", BuyerOrdersView.as_view(), name="orders-mine"),
    path("sales/", SellerOrdersView.as_view(), name="orders-sales"),
    path("<uuid:oid>/", RetrieveOrderView.as_view(), name="orders-detail"),
    path("<uuid:oid>/status/", OrderStatusView.as_view(), name="orders-status"),
    path("<uuid:oid>/confirm-payment/", ConfirmPaymentView.as_view(), name="orders-confirm-payment"),
]
