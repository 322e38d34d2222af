from django.contrib import admin
from django.utils.translation import gettext_lazy as _
from unfold.admin import ModelAdmin
from unfold.decorators import display
from unfold.contrib.filters.admin import RangeDateTimeFilter

from .models import SyncQueueItem
from .services import SyncQueueService


@admin.register(SyncQueueItem)
class SyncQueueItemAdmin(ModelAdmin):
    list_display = ['id', 'service', 'operation', 'entity_id', 'status_badge', 'retry_count', 'next_retry_at', 'created_at']
    list_filter = ['service', 'status', ('created_at', RangeDateTimeFilter)]
    search_fields = ['entity_id', 'operation', 'last_error']
    list_filter_submit = True
    readonly_fields = ['uuid', 'synced_at', 'created_at', 'updated_at']
    actions = ['retry_selected']

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        colors = {
            SyncQueueItem.Status.PENDING: 'warning',
            SyncQueueItem.Status.FAILED: 'danger',
            SyncQueueItem.Status.SYNCED: 'success',
        }
        return colors.get(obj.status, 'info'), obj.get_status_display()

    @admin.action(description=_("Retry selected items now"))
    def retry_selected(self, request, queryset):
        synced = 0
        for item in queryset.exclude(status=SyncQueueItem.Status.SYNCED):
            if item.status == SyncQueueItem.Status.FAILED:
                item.retry_count = 0
                item.status = SyncQueueItem.Status.PENDING
            if SyncQueueService.attempt(item):
                synced += 1
        self.message_user(request, _(f"{synced} item(s) synced"))
