from django.contrib import admin, messages
from django.utils import timezone

from .models import DeletionJob, DeletionJobStep


class DeletionJobStepInline(admin.TabularInline):
    model = DeletionJobStep
    extra = 0
    can_delete = False
    fields = [
        'order', 'step_name', 'status', 'started_at', 'completed_at',
        'items_processed', 'total_items', 'duration_ms', 'failure_reason'
    ]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(DeletionJob)
class DeletionJobAdmin(admin.ModelAdmin):
    list_display = [
        'job_id', 'user', 'status', 'current_batch', 'total_batches',
        'retry_count', 'started_at', 'completed_at'
    ]
    list_filter = ['status', 'created_at']
    search_fields = ['job_id', 'user__id']
    readonly_fields = [
        'job_id', 'user', 'requested_by', 'current_batch', 'total_batches', 'retry_count',
        'failure_reason', 'started_at', 'completed_at', 'cancellation_requested_at',
        'created_at', 'updated_at'
    ]
    inlines = [DeletionJobStepInline]
    actions = ['emergency_stop']

    def has_add_permission(self, request):
        return False

    @admin.action(description='Emergency stop selected jobs')
    def emergency_stop(self, request, queryset):
        """
        Flip active jobs to CANCELLED. A running pipeline notices at its next
        step or batch boundary and stops there.
        """
        stopped = queryset.filter(status__in=DeletionJob.ACTIVE_STATUSES).update(
            status=DeletionJob.STATUS_CANCELLED,
            cancellation_requested_at=timezone.now(),
            failure_reason=f'Emergency stop by {request.user}',
            updated_at=timezone.now(),
        )
        self.message_user(request, f'{stopped} deletion job(s) stopped.', messages.WARNING)
