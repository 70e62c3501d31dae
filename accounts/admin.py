from django.contrib import admin
from django.contrib.auth import get_user_model
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import InviteCode, Label, ProOrg, Publisher, UserProfile

User = get_user_model()


class UserProfileInline(admin.StackedInline):
    """Inline admin for UserProfile within User admin."""
    model = UserProfile
    can_delete = False
    verbose_name = 'Profile'
    verbose_name_plural = 'Profile'
    fields = ['role', 'username', 'publisher', 'pro_org', 'label', 'external_auth_id', 'deleted_at']
    readonly_fields = ['deleted_at']


class UserAdmin(BaseUserAdmin):
    """User admin with profile information."""
    list_display = ['email', 'username', 'get_role', 'is_active', 'date_joined']
    list_filter = ['is_active', 'profile__role']
    inlines = [UserProfileInline]
    ordering = ['-date_joined']

    def get_role(self, obj):
        return obj.profile.get_role_display() if hasattr(obj, 'profile') else 'No Profile'
    get_role.short_description = 'Role'
    get_role.admin_order_field = 'profile__role'


# Unregister the default User admin and register our enhanced version
admin.site.unregister(User)
admin.site.register(User, UserAdmin)


@admin.register(UserProfile)
class UserProfileAdmin(admin.ModelAdmin):
    list_display = ['user', 'role', 'username', 'publisher', 'pro_org', 'label', 'deleted_at']
    list_filter = ['role', 'deleted_at']
    search_fields = ['user__email', 'username']
    readonly_fields = ['created_at', 'updated_at', 'deleted_at', 'deletion_reason', 'data_retention_until']
    ordering = ['-created_at']


@admin.register(InviteCode)
class InviteCodeAdmin(admin.ModelAdmin):
    list_display = ['code', 'role', 'created_by', 'used_by', 'used_at', 'expires_at']
    list_filter = ['role']
    search_fields = ['code']
    readonly_fields = ['created_at']


admin.site.register(Publisher)
admin.site.register(ProOrg)
admin.site.register(Label)
