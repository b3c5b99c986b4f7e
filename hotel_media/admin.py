from django.contrib import admin

from .models import HotelMediaIndex, HotelMediaVersion


@admin.register(HotelMediaIndex)
class HotelMediaIndexAdmin(admin.ModelAdmin):
    list_display = ('file_path', 'external_id', 'sequence', 'file_type', 'file_size', 'updated_at')
    list_filter = ('file_type',)
    search_fields = ('external_id', 'slug', 'file_name')


@admin.register(HotelMediaVersion)
class HotelMediaVersionAdmin(admin.ModelAdmin):
    list_display = ('slug', 'external_id', 'version', 'updated_at')
    search_fields = ('slug', 'external_id')
