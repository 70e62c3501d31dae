from django.db import models
from django.contrib.auth import get_user_model
from django.db.models.signals import post_save
from django.dispatch import receiver
from django.utils import timezone

User = get_user_model()


class Publisher(models.Model):
    """
    Publishing company a contributor can be linked to.
    Profiles linked to a publisher are its staff and receive split notifications.
    """
    name = models.CharField(max_length=255, unique=True)
    ipi_number = models.CharField(max_length=50, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class ProOrg(models.Model):
    """Performance-rights organization (ASCAP, BMI, SOCAN, ...)."""
    name = models.CharField(max_length=255, unique=True)
    country = models.CharField(max_length=100, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "PRO Organization"
        verbose_name_plural = "PRO Organizations"
        ordering = ['name']

    def __str__(self):
        return self.name


class Label(models.Model):
    """Record label. Label accounts manage the artists assigned to them."""
    name = models.CharField(max_length=255, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class UserProfile(models.Model):
    """
    User profile to extend Django User with role and organization links.

    Account deletion never removes this row: it is soft-deleted
    (deleted_at set, PII cleared, role switched to DELETED).
    """

    ROLE_ARTIST = 'ARTIST'
    ROLE_LABEL = 'LABEL'
    ROLE_ADMIN = 'ADMIN'
    ROLE_DELETED = 'DELETED'

    ROLE_CHOICES = [
        (ROLE_ARTIST, 'Artist'),
        (ROLE_LABEL, 'Label'),
        (ROLE_ADMIN, 'Admin'),
        (ROLE_DELETED, 'Deleted'),
    ]

    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        related_name='profile'
    )

    role = models.CharField(
        max_length=20,
        choices=ROLE_CHOICES,
        default=ROLE_ARTIST,
        db_index=True,
        help_text="User's role in the system"
    )

    username = models.CharField(
        max_length=150,
        unique=True,
        null=True,
        blank=True,
        help_text="Public handle used when searching for collaborators"
    )

    bio = models.TextField(blank=True)
    phone = models.CharField(max_length=50, blank=True)
    address = models.CharField(max_length=255, blank=True)

    publisher = models.ForeignKey(
        Publisher,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='staff',
        help_text="Publisher this user works for"
    )
    pro_org = models.ForeignKey(
        ProOrg,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='staff',
        help_text="PRO this user works for"
    )
    label = models.ForeignKey(
        Label,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='members',
        help_text="Label this user works for or is signed to"
    )

    external_auth_id = models.CharField(
        max_length=64,
        blank=True,
        db_index=True,
        help_text="User id at the identity provider"
    )

    # Soft delete
    deleted_at = models.DateTimeField(null=True, blank=True, db_index=True)
    deletion_reason = models.CharField(max_length=255, blank=True)
    data_retention_until = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Personal data may be purged after this date"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "User Profile"
        verbose_name_plural = "User Profiles"
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.user.email or self.user.username} - {self.role}"

    @property
    def is_admin(self):
        return self.role == self.ROLE_ADMIN

    @property
    def is_deleted(self):
        return self.deleted_at is not None


class InviteCode(models.Model):
    """
    One-time code that upgrades an ARTIST account to LABEL or ADMIN.
    """

    ROLE_CHOICES = [
        (UserProfile.ROLE_LABEL, 'Label'),
        (UserProfile.ROLE_ADMIN, 'Admin'),
    ]

    code = models.CharField(max_length=32, unique=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES)

    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        related_name='created_invites'
    )
    used_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='redeemed_invites'
    )
    used_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.code} ({self.role})"

    @property
    def is_expired(self):
        return self.expires_at is not None and self.expires_at < timezone.now()

    def is_redeemable_for(self, role):
        return self.used_at is None and not self.is_expired and self.role == role


@receiver(post_save, sender=User)
def create_user_profile(sender, instance, created, **kwargs):
    """
    Automatically create a UserProfile when a new User is created.
    Default role is ARTIST.
    """
    if created:
        UserProfile.objects.get_or_create(user=instance)
