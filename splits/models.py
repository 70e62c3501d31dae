from decimal import Decimal

from django.conf import settings
from django.db import models


class Song(models.Model):
    """Musical work a split sheet allocates ownership of."""

    working_title = models.CharField(max_length=255, blank=True, null=True)
    final_title = models.CharField(max_length=255)
    iswc = models.CharField(max_length=20, blank=True, null=True)
    creation_date = models.DateField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['final_title']

    def __str__(self):
        return self.final_title


class SplitSheet(models.Model):
    """
    Ownership agreement for one song.

    total_percentage caches the sum of all contributor percentages and is
    recomputed on every contributor write.
    """

    STATUS_DRAFT = 'DRAFT'
    STATUS_PENDING = 'PENDING'
    STATUS_SIGNED = 'SIGNED'
    STATUS_DISPUTED = 'DISPUTED'
    STATUS_PUBLISHED = 'PUBLISHED'
    STATUS_REVERSED = 'REVERSED'

    # DRAFT, PUBLISHED and REVERSED only exist on legacy rows. No transition
    # in state_machine.TRANSITIONS enters or leaves them.
    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_PENDING, 'Pending'),
        (STATUS_SIGNED, 'Signed'),
        (STATUS_DISPUTED, 'Disputed'),
        (STATUS_PUBLISHED, 'Published'),
        (STATUS_REVERSED, 'Reversed'),
    ]

    song = models.ForeignKey(
        Song,
        on_delete=models.CASCADE,
        related_name='split_sheets'
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_split_sheets',
        help_text="Owner of the sheet (cleared when the account is deleted)"
    )

    version = models.PositiveIntegerField(default=1)
    agreement_date = models.DateField(blank=True, null=True)

    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
        db_index=True
    )

    total_percentage = models.DecimalField(
        max_digits=7,
        decimal_places=2,
        default=Decimal('0'),
        help_text="Sum of all contributor percentages"
    )

    clauses = models.TextField(blank=True, default='')

    disputed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='disputed_split_sheets'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['created_by', '-created_at'], name='splits_sheet_creator_idx'),
        ]

    def __str__(self):
        return f"Split sheet #{self.pk} for {self.song} ({self.status})"


class Contributor(models.Model):
    """
    One party's stake in a split sheet.
    The linked user is optional: contributors may not have an account.
    """

    TYPE_WRITER = 'WRITER'
    TYPE_PRODUCER = 'PRODUCER'

    TYPE_CHOICES = [
        (TYPE_WRITER, 'Writer'),
        (TYPE_PRODUCER, 'Producer'),
    ]

    split_sheet = models.ForeignKey(
        SplitSheet,
        on_delete=models.CASCADE,
        related_name='contributors'
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='contributions'
    )

    legal_name = models.CharField(max_length=255)
    stage_name = models.CharField(max_length=255, blank=True, null=True)
    role = models.CharField(max_length=100, default='Contributor')

    contributor_type = models.CharField(
        max_length=20,
        choices=TYPE_CHOICES,
        default=TYPE_WRITER,
        db_index=True
    )

    percentage = models.DecimalField(
        max_digits=7,
        decimal_places=2,
        default=Decimal('0'),
        help_text="Share percentage"
    )

    # PRO affiliation
    pro_affiliation = models.CharField(max_length=100, blank=True, null=True)
    ipi_number = models.CharField(max_length=50, blank=True, null=True)
    pro_org = models.ForeignKey(
        'accounts.ProOrg',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='contributors'
    )

    # Publisher: free text or a linked publisher
    publisher = models.CharField(max_length=255, blank=True, null=True)
    publisher_share = models.DecimalField(max_digits=7, decimal_places=2, blank=True, null=True)
    publisher_entity = models.ForeignKey(
        'accounts.Publisher',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='contributors'
    )

    label = models.ForeignKey(
        'accounts.Label',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='contributors'
    )

    # Personal contact data (cleared on account deletion)
    contact_email = models.EmailField(blank=True, null=True)
    contact_phone = models.CharField(max_length=50, blank=True, null=True)
    address = models.CharField(max_length=255, blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.stage_name or self.legal_name} - {self.percentage}% ({self.contributor_type})"

    @property
    def display_name(self):
        return self.stage_name or self.legal_name


class Signature(models.Model):
    """
    Signature on a split sheet.

    Legal record: account deletion unlinks the user but keeps the row.
    """

    split_sheet = models.ForeignKey(
        SplitSheet,
        on_delete=models.CASCADE,
        related_name='signatures'
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='split_signatures'
    )
    contributor = models.ForeignKey(
        Contributor,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='signatures'
    )

    signed_at = models.DateTimeField()
    signature_data = models.TextField(help_text="Captured signature payload")
    ip_address = models.GenericIPAddressField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['signed_at']

    def __str__(self):
        return f"Signature on sheet #{self.split_sheet_id} at {self.signed_at:%Y-%m-%d}"


class AuditLog(models.Model):
    """Append-only record of split sheet and account lifecycle events."""

    split_sheet = models.ForeignKey(
        SplitSheet,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='audit_logs'
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs'
    )
    action = models.CharField(max_length=100, db_index=True)
    details = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.action} at {self.created_at:%Y-%m-%d %H:%M}"
