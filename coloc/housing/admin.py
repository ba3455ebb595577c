from django.contrib import admin

from .models import Housing


@admin.register(Housing)
class HousingAdmin(admin.ModelAdmin):
    list_display = ['title', 'external_key', 'owner', 'created_at']
    search_fields = ['title', 'external_key', 'address', 'owner__email']
    raw_id_fields = ['owner']
