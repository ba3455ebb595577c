from django.contrib import admin

from .models import Message


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ['id', 'visit', 'sender', 'receiver', 'kind', 'read', 'created_at']
    list_filter = ['kind', 'read']
    search_fields = ['content', 'sender__email', 'receiver__email']
    raw_id_fields = ['visit', 'sender', 'receiver']
