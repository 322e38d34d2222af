from django.urls import path
from . import views

app_name = "production"

urlpatterns = [
    path("units/", views.UnitListView.as_view(), name="unit-list"),
    path("units/<int:unit_id>/", views.UnitDetailView.as_view(), name="unit-detail"),
    path("units/<int:unit_id>/audit/", views.UnitAuditView.as_view(), name="unit-audit"),
    path("units/<int:unit_id>/advance/", views.UnitAdvanceView.as_view(), name="unit-advance"),
    path("units/<int:unit_id>/qc/", views.UnitQCView.as_view(), name="unit-qc"),
    path("units/<int:unit_id>/batch/", views.UnitBatchView.as_view(), name="unit-batch"),

    path("batches/", views.BatchListView.as_view(), name="batch-list"),
    path("batches/<int:batch_id>/", views.BatchDetailView.as_view(), name="batch-detail"),
    path("batches/<int:batch_id>/accounting/", views.BatchAccountingView.as_view(), name="batch-accounting"),
    path("batches/<int:batch_id>/advance-all/", views.BatchAdvanceAllView.as_view(), name="batch-advance-all"),
    path("batches/<int:batch_id>/auto-pick/", views.BatchAutoPickView.as_view(), name="batch-auto-pick"),
    path("batches/<int:batch_id>/complete/", views.BatchCompleteView.as_view(), name="batch-complete"),

    path("manifests/", views.ManifestListView.as_view(), name="manifest-list"),
    path("manifests/<int:manifest_id>/", views.ManifestDetailView.as_view(), name="manifest-detail"),
]
