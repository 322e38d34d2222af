from django.contrib import admin
from django.db.models import Sum
from django.utils.translation import gettext_lazy as _
from unfold.admin import ModelAdmin, TabularInline
from unfold.decorators import display
from unfold.contrib.filters.admin import RangeDateTimeFilter, RangeNumericFilter

from .models import Bin, BinStock, StockMovement, StockReservation, CycleCountSession, CycleCountEntry


class BinStockInline(TabularInline):
    model = BinStock
    extra = 0
    fields = ('sku', 'quantity', 'version', 'last_counted_at', 'last_movement_at')
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


class CycleCountEntryInline(TabularInline):
    model = CycleCountEntry
    extra = 0
    fields = ('bin_stock', 'sku', 'system_quantity', 'counted_quantity', 'variance_display')
    readonly_fields = fields

    @display(description=_("Variance"))
    def variance_display(self, obj):
        variance = obj.variance
        return "-" if variance is None else f"{variance:+}"

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Bin)
class BinAdmin(ModelAdmin):
    list_display = ['id', 'code', 'name', 'category', 'status_badge', 'on_hand', 'created_at']
    list_filter = ['category', 'is_active']
    search_fields = ['code', 'name']
    list_filter_submit = True
    inlines = [BinStockInline]

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        if obj.is_active:
            return 'success', _("Active")
        return 'danger', _("Inactive")

    @display(description=_("On hand"))
    def on_hand(self, obj):
        return obj.stock.aggregate(total=Sum('quantity'))['total'] or 0


@admin.register(StockMovement)
class StockMovementAdmin(ModelAdmin):
    list_display = ['id', 'bin', 'sku', 'type_badge', 'quantity_display',
                    'quantity_before', 'quantity_after', 'reference_id', 'actor', 'created_at']
    list_filter = [
        'movement_type',
        ('created_at', RangeDateTimeFilter),
        ('quantity', RangeNumericFilter),
    ]
    search_fields = ['sku', 'bin__code', 'reference_id', 'reason', 'actor']
    list_filter_submit = True
    list_fullwidth = True

    @display(description=_("Type"), label=True)
    def type_badge(self, obj):
        colors = {
            'PICK': 'warning',
            'PUTBACK': 'info',
            'RECEIPT': 'success',
            'CYCLE_COUNT': 'info',
            'ADJUSTMENT': 'danger',
        }
        return colors.get(obj.movement_type, 'info'), obj.get_movement_type_display()

    @display(description=_("Change"), ordering='quantity')
    def quantity_display(self, obj):
        return f"{obj.quantity:+}"

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(StockReservation)
class StockReservationAdmin(ModelAdmin):
    list_display = ['id', 'unit', 'sku', 'bin', 'quantity', 'status', 'created_at', 'consumed_at']
    list_filter = ['status', ('created_at', RangeDateTimeFilter)]
    search_fields = ['sku', 'unit__uid', 'bin__code']
    readonly_fields = ['unit', 'sku', 'bin', 'quantity', 'status', 'consumed_at']

    def has_add_permission(self, request):
        return False


@admin.register(CycleCountSession)
class CycleCountSessionAdmin(ModelAdmin):
    list_display = ['session_number', 'sample_size', 'status_badge', 'opened_by', 'applied_by', 'created_at']
    list_filter = ['status', ('created_at', RangeDateTimeFilter)]
    search_fields = ['session_number']
    list_filter_submit = True
    inlines = [CycleCountEntryInline]
    readonly_fields = ['session_number', 'sample_size', 'status', 'opened_by', 'applied_by', 'applied_at']

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        colors = {'OPEN': 'warning', 'APPLIED': 'success', 'DISCARDED': 'danger'}
        return colors.get(obj.status, 'info'), obj.get_status_display()
