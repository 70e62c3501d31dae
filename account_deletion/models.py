import uuid

from django.conf import settings
from django.db import models
from django.db.models import Q


class DeletionJob(models.Model):
    """
    One asynchronous account deletion run.

    At most one job per user can be active (PENDING, IN_PROGRESS or
    RETRYING); the partial unique constraint enforces it.
    """

    STATUS_PENDING = 'PENDING'
    STATUS_IN_PROGRESS = 'IN_PROGRESS'
    STATUS_RETRYING = 'RETRYING'
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_FAILED = 'FAILED'
    STATUS_NEEDS_MANUAL_REVIEW = 'NEEDS_MANUAL_REVIEW'
    STATUS_CANCELLED = 'CANCELLED'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_IN_PROGRESS, 'In Progress'),
        (STATUS_RETRYING, 'Retrying'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_FAILED, 'Failed'),
        (STATUS_NEEDS_MANUAL_REVIEW, 'Needs Manual Review'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    ACTIVE_STATUSES = [STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_RETRYING]
    TERMINAL_STATUSES = [STATUS_COMPLETED, STATUS_NEEDS_MANUAL_REVIEW, STATUS_CANCELLED]

    job_id = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='deletion_jobs',
        help_text="Account being deleted"
    )
    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='requested_deletion_jobs'
    )

    status = models.CharField(
        max_length=30,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
        db_index=True
    )

    current_batch = models.PositiveIntegerField(default=0)
    total_batches = models.PositiveIntegerField(default=0)
    retry_count = models.PositiveIntegerField(default=0)
    failure_reason = models.TextField(blank=True)

    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancellation_requested_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['user'],
                condition=Q(status__in=['PENDING', 'IN_PROGRESS', 'RETRYING']),
                name='one_active_deletion_job_per_user',
            ),
        ]

    def __str__(self):
        return f"Deletion job {self.job_id} for user {self.user_id} ({self.status})"

    @property
    def is_active(self):
        return self.status in self.ACTIVE_STATUSES

    def step(self, step_name):
        return self.steps.get(step_name=step_name)


class DeletionJobStep(models.Model):
    """Audit trail entry for one stage of a deletion job."""

    VALIDATE_USER = 'VALIDATE_USER'
    BATCH_PROCESSING = 'BATCH_PROCESSING'
    SUPABASE_DELETE = 'SUPABASE_DELETE'
    CLEANUP = 'CLEANUP'
    COMPLETED = 'COMPLETED'

    STEP_ORDER = [VALIDATE_USER, BATCH_PROCESSING, SUPABASE_DELETE, CLEANUP, COMPLETED]

    STEP_CHOICES = [
        (VALIDATE_USER, 'Validate user'),
        (BATCH_PROCESSING, 'Batch processing'),
        (SUPABASE_DELETE, 'Identity provider delete'),
        (CLEANUP, 'Cleanup'),
        (COMPLETED, 'Completed'),
    ]

    STATUS_PENDING = 'PENDING'
    STATUS_IN_PROGRESS = 'IN_PROGRESS'
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_FAILED = 'FAILED'
    STATUS_FAILED_NON_FATAL = 'FAILED_NON_FATAL'
    STATUS_CANCELLED = 'CANCELLED'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_IN_PROGRESS, 'In Progress'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_FAILED, 'Failed'),
        (STATUS_FAILED_NON_FATAL, 'Failed (non-fatal)'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    job = models.ForeignKey(
        DeletionJob,
        on_delete=models.CASCADE,
        related_name='steps'
    )
    step_name = models.CharField(max_length=30, choices=STEP_CHOICES)
    order = models.PositiveSmallIntegerField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)

    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.TextField(blank=True)
    retry_count = models.PositiveIntegerField(default=0)
    items_processed = models.PositiveIntegerField(default=0)
    total_items = models.PositiveIntegerField(default=0)
    duration_ms = models.PositiveIntegerField(null=True, blank=True)

    class Meta:
        ordering = ['order']
        constraints = [
            models.UniqueConstraint(fields=['job', 'step_name'], name='unique_step_per_deletion_job'),
        ]

    def __str__(self):
        return f"{self.step_name} ({self.status})"
