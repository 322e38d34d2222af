from django.urls import path
from . import views

app_name = "integrations"

urlpatterns = [
    path("sync-queue/", views.SyncQueueListView.as_view(), name="sync-queue-list"),
    path("sync-queue/process/", views.SyncQueueProcessView.as_view(), name="sync-queue-process"),
    path("sync-queue/<int:item_id>/retry/", views.SyncQueueRetryView.as_view(), name="sync-queue-retry"),

    path("orders/import/", views.OrderImportView.as_view(), name="order-import"),
    path("vendors/sync/", views.VendorSyncView.as_view(), name="vendor-sync"),
]
