from django.db import models
from django.db.models.functions import Lower


class Country(models.Model):
    # id — auto-generated
    name = models.CharField(max_length=255)
    capital = models.CharField(max_length=255, null=True, blank=True)
    region = models.CharField(max_length=255, null=True, blank=True)
    population = models.BigIntegerField()
    # currency_code — null when the directory lists no currency
    currency_code = models.CharField(max_length=32, null=True, blank=True)
    # exchange_rate — null when the currency has no quoted rate
    exchange_rate = models.FloatField(null=True, blank=True)
    # estimated_gdp — 0 without currency, null without rate, computed otherwise
    estimated_gdp = models.FloatField(null=True, blank=True)
    flag_url = models.URLField(max_length=512, null=True, blank=True)
    # last_refreshed_at — updated on every upsert
    last_refreshed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "countries"
        verbose_name_plural = "countries"
        constraints = [
            # names are unique regardless of case, matching the iexact lookups
            models.UniqueConstraint(Lower("name"), name="unique_country_name_ci"),
        ]

    def __str__(self):
        return self.name


class SyncMetadata(models.Model):
    LAST_REFRESHED_AT = "last_refreshed_at"

    meta_key = models.CharField(max_length=128, primary_key=True)
    meta_value = models.CharField(max_length=1024, null=True, blank=True)
    updated_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "metadata"
        verbose_name_plural = "sync metadata"

    def __str__(self):
        return f"{self.meta_key}={self.meta_value}"
