from django.contrib import admin
from django.utils.translation import gettext_lazy as _
from unfold.admin import ModelAdmin, TabularInline
from unfold.decorators import display
from unfold.contrib.filters.admin import RangeDateFilter, RangeDateTimeFilter

from .models import ProductionUnit, UnitRequirement, AuditEntry, Batch, BatchMembership, DispatchManifest


STAGE_COLORS = {
    'PLANNED': 'info',
    'KITTING': 'warning',
    'KITTED': 'info',
    'PACKING': 'warning',
    'PACKED': 'info',
    'QC_PENDING': 'warning',
    'QC_PASSED': 'success',
    'QC_FAILED': 'danger',
    'PRINTING': 'warning',
    'PRINTED': 'info',
    'DISPATCHED': 'success',
}


class UnitRequirementInline(TabularInline):
    model = UnitRequirement
    extra = 0
    fields = ('sku', 'quantity')


class AuditEntryInline(TabularInline):
    model = AuditEntry
    extra = 0
    fields = ('timestamp', 'actor', 'stage_from', 'stage_to', 'message')
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


class BatchMembershipInline(TabularInline):
    model = BatchMembership
    extra = 0
    fields = ('unit', 'added_at', 'left_at', 'outcome')
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(ProductionUnit)
class ProductionUnitAdmin(ModelAdmin):
    list_display = ['uid', 'order_id', 'product_ref', 'order_date', 'stage_badge', 'batch', 'updated_at']
    list_filter = [
        'stage',
        ('order_date', RangeDateFilter),
    ]
    search_fields = ['uid', 'order_id', 'product_ref']
    list_filter_submit = True
    list_fullwidth = True
    inlines = [UnitRequirementInline, AuditEntryInline]
    readonly_fields = ['uid', 'stage', 'batch', 'manifest', 'created_at', 'updated_at']

    @display(description=_("Stage"), label=True)
    def stage_badge(self, obj):
        return STAGE_COLORS.get(obj.stage, 'info'), obj.get_stage_display()


@admin.register(Batch)
class BatchAdmin(ModelAdmin):
    list_display = ['batch_number', 'stage_type', 'status_badge', 'from_date', 'to_date', 'unit_count', 'created_at']
    list_filter = ['stage_type', 'status', ('created_at', RangeDateTimeFilter)]
    search_fields = ['batch_number']
    list_filter_submit = True
    inlines = [BatchMembershipInline]
    readonly_fields = ['batch_number', 'stage_type', 'status', 'completed_at', 'created_by']

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        colors = {'OPEN': 'info', 'IN_PROGRESS': 'warning', 'COMPLETE': 'success'}
        return colors.get(obj.status, 'info'), obj.get_status_display()

    @display(description=_("Units"))
    def unit_count(self, obj):
        return obj.memberships.count()


@admin.register(DispatchManifest)
class DispatchManifestAdmin(ModelAdmin):
    list_display = ['manifest_number', 'courier_partner', 'pickup_person_name', 'tracking_number',
                    'status_badge', 'created_at']
    list_filter = ['status', 'courier_partner', ('created_at', RangeDateTimeFilter)]
    search_fields = ['manifest_number', 'courier_partner', 'tracking_number']
    list_filter_submit = True
    readonly_fields = ['manifest_number', 'created_by']

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        colors = {'PENDING': 'warning', 'PICKED_UP': 'info', 'DELIVERED': 'success', 'CANCELLED': 'danger'}
        return colors.get(obj.status, 'info'), obj.get_status_display()
