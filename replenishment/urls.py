from django.urls import path
from . import views

app_name = "replenishment"

urlpatterns = [
    path("rop/", views.ROPListView.as_view(), name="rop-list"),
    path("rop/calculate/", views.ROPCalculateView.as_view(), name="rop-calculate"),
    path("rop/jobs/<str:job_id>/", views.ROPJobView.as_view(), name="rop-job"),
    path("rop/to-order/", views.ROPToOrderView.as_view(), name="rop-to-order"),
    path("rop/pending/", views.ROPPendingView.as_view(), name="rop-pending"),
    path("rop/create-pos/", views.ROPCreatePOsView.as_view(), name="rop-create-pos"),
    path("rop/<int:item_id>/", views.ROPDetailView.as_view(), name="rop-detail"),
    path("rop/<int:item_id>/quantity/", views.ROPQuantityView.as_view(), name="rop-quantity"),
    path("rop/<int:item_id>/vendor-split/", views.ROPVendorSplitView.as_view(), name="rop-vendor-split"),
    path("rop/<int:item_id>/reset/", views.ROPResetView.as_view(), name="rop-reset"),

    path("purchase-orders/", views.PurchaseOrderListView.as_view(), name="po-list"),
    path("purchase-orders/<int:po_id>/", views.PurchaseOrderDetailView.as_view(), name="po-detail"),
    path("purchase-orders/<int:po_id>/receive/", views.PurchaseOrderReceiveView.as_view(), name="po-receive"),

    path("vendors/", views.VendorListView.as_view(), name="vendor-list"),
    path("vendors/<int:vendor_id>/", views.VendorDetailView.as_view(), name="vendor-detail"),
]
