from django.contrib import admin
from .models import Job, QueuedMessage


class ReadOnlyAdmin(admin.ModelAdmin):
    # Rows are written by the upload step and the worker only.
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(Job)
class JobAdmin(ReadOnlyAdmin):
    list_display = ("job_id", "status", "progress", "compression_savings", "created_at", "updated_at")
    list_filter = ("status",)
    search_fields = ("job_id", "blob_key", "file_name")


@admin.register(QueuedMessage)
class QueuedMessageAdmin(ReadOnlyAdmin):
    list_display = ("id", "receive_count", "visible_at", "created_at")
    search_fields = ("id", "body")
