from django.contrib import admin

from .models import FileVersion, Node, UploadSession


class FileVersionInline(admin.TabularInline):
    model = FileVersion
    extra = 0
    readonly_fields = ['version', 'type', 'size', 'hash', 'storage_path', 'changed', 'user']
    can_delete = False


@admin.register(Node)
class NodeAdmin(admin.ModelAdmin):
    """Admin interface for nodes."""

    list_display = ['name', 'owner', 'is_directory', 'size', 'version', 'storage_adapter', 'deleted', 'changed']
    list_filter = ['is_directory', 'storage_adapter', 'readonly', 'owner']
    search_fields = ['name', 'owner__username']
    readonly_fields = ['id', 'hash', 'version', 'storage_path', 'created_at', 'updated_at']
    raw_id_fields = ['parent', 'storage_reference']
    inlines = [FileVersionInline]


@admin.register(UploadSession)
class UploadSessionAdmin(admin.ModelAdmin):
    """Admin interface for in-progress uploads."""

    list_display = ['id', 'owner', 'size', 'chunks_received', 'total_chunks', 'expires_at']
    readonly_fields = ['id', 'temp_path', 'hash', 'created_at', 'updated_at']
