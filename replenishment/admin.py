from django.contrib import admin
from django.utils.translation import gettext_lazy as _
from unfold.admin import ModelAdmin, TabularInline
from unfold.decorators import display
from unfold.contrib.filters.admin import RangeDateFilter, RangeDateTimeFilter, RangeNumericFilter

from .models import Vendor, VendorItem, UsageRecord, CalculationJob, ROPItem, PurchaseOrder, PurchaseOrderItem


class VendorItemInline(TabularInline):
    model = VendorItem
    extra = 0
    fields = ('sku', 'rate', 'lead_time_days', 'is_primary')


class PurchaseOrderItemInline(TabularInline):
    model = PurchaseOrderItem
    extra = 0
    fields = ('sku', 'quantity_ordered', 'quantity_received', 'rate', 'amount', 'rop_item')
    readonly_fields = ('amount', 'rop_item')


@admin.register(Vendor)
class VendorAdmin(ModelAdmin):
    list_display = ['id', 'name', 'external_id', 'lead_time_days', 'status_badge', 'synced_at']
    list_filter = ['is_active']
    search_fields = ['name', 'external_id', 'items__sku']
    list_filter_submit = True
    inlines = [VendorItemInline]

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        if obj.is_active:
            return 'success', _("Active")
        return 'danger', _("Inactive")


@admin.register(UsageRecord)
class UsageRecordAdmin(ModelAdmin):
    list_display = ['date', 'sku', 'quantity', 'source', 'reference']
    list_filter = ['source', ('date', RangeDateFilter)]
    search_fields = ['sku', 'reference']
    list_filter_submit = True


@admin.register(CalculationJob)
class CalculationJobAdmin(ModelAdmin):
    list_display = ['job_id', 'status_badge', 'as_of', 'item_count', 'triggered_by', 'started_at', 'finished_at']
    list_filter = ['status', ('started_at', RangeDateTimeFilter)]
    readonly_fields = ['job_id', 'status', 'as_of', 'discard_overrides', 'item_count', 'error',
                       'triggered_by', 'started_at', 'finished_at']

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        colors = {'RUNNING': 'warning', 'SUCCEEDED': 'success', 'FAILED': 'danger'}
        return colors.get(obj.status, 'info'), obj.get_status_display()

    def has_add_permission(self, request):
        return False


@admin.register(ROPItem)
class ROPItemAdmin(ModelAdmin):
    list_display = ['sku', 'average_daily_usage', 'rop', 'current_stock', 'suggested_quantity',
                    'adjusted_quantity', 'primary_vendor', 'status_badge']
    list_filter = [
        'status',
        ('suggested_quantity', RangeNumericFilter),
    ]
    search_fields = ['sku', 'primary_vendor__name']
    list_filter_submit = True
    list_fullwidth = True
    readonly_fields = ['average_daily_usage', 'maximum_daily_usage', 'lead_time_days', 'lead_time_demand',
                       'safety_stock', 'rop', 'current_stock', 'pending_quantity', 'yet_to_be_received',
                       'suggested_quantity', 'status', 'job', 'purchase_order', 'ordered_at']

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        colors = {'PENDING': 'info', 'ADJUSTED': 'warning', 'ORDERED': 'success'}
        return colors.get(obj.status, 'info'), obj.get_status_display()


@admin.register(PurchaseOrder)
class PurchaseOrderAdmin(ModelAdmin):
    list_display = ['order_number', 'vendor', 'status_badge', 'order_date', 'expected_date', 'total_display']
    list_filter = ['status', 'vendor', ('order_date', RangeDateFilter)]
    search_fields = ['order_number', 'vendor__name', 'items__sku']
    list_filter_submit = True
    inlines = [PurchaseOrderItemInline]
    readonly_fields = ['order_number', 'total', 'created_by']

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        colors = {
            'DRAFT': 'info',
            'SENT': 'warning',
            'CONFIRMED': 'warning',
            'PARTIAL': 'warning',
            'RECEIVED': 'success',
            'CANCELLED': 'danger',
        }
        return colors.get(obj.status, 'info'), obj.get_status_display()

    @display(description=_("Total"), ordering='total')
    def total_display(self, obj):
        return f"{obj.total:,.2f}"
