from django.contrib import admin
from .models import AuditLog, Contributor, Signature, SplitSheet, Song


class ContributorInline(admin.TabularInline):
    model = Contributor
    extra = 0
    fields = ['legal_name', 'stage_name', 'user', 'contributor_type', 'percentage', 'pro_affiliation', 'publisher']
    raw_id_fields = ['user']


class SignatureInline(admin.TabularInline):
    model = Signature
    extra = 0
    fields = ['user', 'contributor', 'signed_at', 'ip_address']
    readonly_fields = fields
    can_delete = False


@admin.register(Song)
class SongAdmin(admin.ModelAdmin):
    list_display = ['final_title', 'working_title', 'iswc', 'creation_date', 'created_at']
    search_fields = ['final_title', 'working_title', 'iswc']


@admin.register(SplitSheet)
class SplitSheetAdmin(admin.ModelAdmin):
    list_display = ['id', 'song', 'created_by', 'status', 'total_percentage', 'version', 'updated_at']
    list_filter = ['status', 'created_at']
    search_fields = ['song__final_title', 'created_by__email']
    readonly_fields = ['total_percentage', 'version', 'created_at', 'updated_at']
    raw_id_fields = ['song', 'created_by', 'disputed_by']
    inlines = [ContributorInline, SignatureInline]


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['action', 'split_sheet', 'user', 'created_at']
    list_filter = ['action']
    readonly_fields = ['split_sheet', 'user', 'action', 'details', 'created_at']
    date_hierarchy = 'created_at'

    def has_add_permission(self, request):
        return False
