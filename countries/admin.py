from django.contrib import admin

from .models import Country, SyncMetadata


@admin.register(Country)
class CountryAdmin(admin.ModelAdmin):
    list_display = ("name", "region", "population", "currency_code", "estimated_gdp", "last_refreshed_at")
    list_filter = ("region",)
    search_fields = ("name", "capital", "currency_code")


@admin.register(SyncMetadata)
class SyncMetadataAdmin(admin.ModelAdmin):
    list_display = ("meta_key", "meta_value", "updated_at")
