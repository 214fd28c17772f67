from django.contrib import admin

from apps.custom_fields.forms import DataFieldForm
from apps.custom_fields.models import DataField, DataGroup


class DataFieldInline(admin.TabularInline):
    model = DataField
    form = DataFieldForm
    extra = 0
    fields = ('slug', 'type', 'title', 'is_editable', 'is_staff_only', 'validation_rules', 'sort_order')
    ordering = ('sort_order', 'id')


@admin.register(DataGroup)
class DataGroupAdmin(admin.ModelAdmin):
    list_display = ('name', 'slug', 'updated_at')
    search_fields = ('name', 'slug')
    prepopulated_fields = {'slug': ('name',)}
    inlines = [DataFieldInline]


@admin.register(DataField)
class DataFieldAdmin(admin.ModelAdmin):
    form = DataFieldForm
    list_display = (
        'slug',
        'group',
        'type',
        'title',
        'is_editable',
        'is_staff_only',
        'sort_order',
    )
    list_filter = ('group', 'type', 'is_editable', 'is_staff_only')
    search_fields = ('slug', 'title', 'group__slug')
