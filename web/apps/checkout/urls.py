from django.urls import path

from .views import (
    CompleteTransactionView,
    OrdersCollectionView,
    OrdersPingView,
    PayTransactionView,
    ProcessTransactionView,
    SellerTransactionsView,
)

app_name = "checkout"

urlpatterns = [
    path("ping/", OrdersPingView.as_view(), name="ping"),
    path("", OrdersCollectionView.as_view(), name="orders-collection"),  # GET buyer list / POST checkout
    path("seller/", SellerTransactionsView.as_view(), name="orders-seller"),
    path("<uuid:tid>/pay/", PayTransactionView.as_view(), name="orders-pay"),
    path("<uuid:tid>/process/", ProcessTransactionView.as_view(), name="orders-process"),
    path("<uuid:tid>/complete/", CompleteTransactionView.as_view(), name="orders-complete"),
]
