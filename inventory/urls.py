from django.urls import path
from . import views

app_name = "inventory"

urlpatterns = [
    path("bins/", views.BinListView.as_view(), name="bin-list"),
    path("bins/<int:bin_id>/", views.BinDetailView.as_view(), name="bin-detail"),

    path("stock/", views.StockListView.as_view(), name="stock-list"),
    path("stock/receive/", views.StockReceiveView.as_view(), name="stock-receive"),
    path("adjustments/", views.StockAdjustView.as_view(), name="adjust"),
    path("transfers/", views.StockTransferView.as_view(), name="transfer"),
    path("movements/", views.MovementListView.as_view(), name="movement-list"),

    path("availability/", views.AvailabilityView.as_view(), name="availability"),
    path("auto-pick/", views.AutoPickView.as_view(), name="auto-pick"),
    path("putback/", views.PutbackView.as_view(), name="putback"),
    path("reservations/unit/<int:unit_id>/", views.UnitReservationsView.as_view(), name="unit-reservations"),

    path("cycle-counts/", views.CycleCountListView.as_view(), name="cycle-count-list"),
    path("cycle-counts/<int:session_id>/", views.CycleCountDetailView.as_view(), name="cycle-count-detail"),
    path("cycle-counts/<int:session_id>/record/", views.CycleCountRecordView.as_view(), name="cycle-count-record"),
    path("cycle-counts/<int:session_id>/<str:action>/", views.CycleCountActionView.as_view(), name="cycle-count-action"),
]
