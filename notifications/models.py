from django.db import models
from django.contrib.auth import get_user_model

User = get_user_model()


class Notification(models.Model):
    """
    In-app notification about a split sheet event.
    Rows are created in bulk by the fan-out service and only ever go from
    unread to read.
    """

    TYPE_SPLIT_INVITE = 'SPLIT_INVITE'
    TYPE_SPLIT_UPDATED = 'SPLIT_UPDATED'
    TYPE_SPLIT_FINALIZED = 'SPLIT_FINALIZED'
    TYPE_SPLIT_DISPUTED = 'SPLIT_DISPUTED'
    TYPE_SPLIT_READY = 'SPLIT_READY'
    TYPE_GENERAL = 'GENERAL'

    NOTIFICATION_TYPES = [
        (TYPE_SPLIT_INVITE, 'Split Invite'),
        (TYPE_SPLIT_UPDATED, 'Split Updated'),
        (TYPE_SPLIT_FINALIZED, 'Split Finalized'),
        (TYPE_SPLIT_DISPUTED, 'Split Disputed'),
        (TYPE_SPLIT_READY, 'Split Ready'),
        (TYPE_GENERAL, 'General'),
    ]

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='notifications',
        help_text="User who receives this notification",
        db_index=True
    )

    type = models.CharField(
        max_length=30,
        choices=NOTIFICATION_TYPES,
        default=TYPE_GENERAL,
        db_index=True
    )

    title = models.CharField(max_length=255)
    message = models.TextField(help_text="Notification message text")

    split_sheet = models.ForeignKey(
        'splits.SplitSheet',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='notifications'
    )

    read = models.BooleanField(
        default=False,
        help_text="Whether the user has read this notification",
        db_index=True
    )

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True
    )

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['user', '-created_at'], name='notif_user_created_idx'),
            models.Index(fields=['user', 'read'], name='notif_user_read_idx'),
        ]
        verbose_name = 'Notification'
        verbose_name_plural = 'Notifications'

    def __str__(self):
        return f"{self.type} for user {self.user_id}: {self.title}"

    def mark_as_read(self):
        """Mark notification as read"""
        if not self.read:
            self.read = True
            self.save(update_fields=['read'])
