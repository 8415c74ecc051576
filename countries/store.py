"""
Persistence operations for countries and sync metadata.

Writes issued during a refresh run (`upsert_country`, `set_last_refreshed`)
must run inside the caller's `transaction.atomic()` block and never commit
on their own. Reads are independent of any run.
"""
import logging
from datetime import datetime

from django.db import DEFAULT_DB_ALIAS, connections, transaction
from django.db.transaction import TransactionManagementError
from django.utils.dateparse import parse_datetime

from .models import Country, SyncMetadata

logger = logging.getLogger(__name__)

MUTABLE_FIELDS = [
    "capital", "region", "population", "currency_code", "exchange_rate",
    "estimated_gdp", "flag_url", "last_refreshed_at",
]

SORT_ORDERINGS = {
    "gdp_desc": ("-estimated_gdp",),
    "gdp_asc": ("estimated_gdp",),
}


def ensure_schema(using=DEFAULT_DB_ALIAS):
    """Create the countries and metadata tables if they are missing."""
    connection = connections[using]
    existing = set(connection.introspection.table_names())
    missing = [m for m in (Country, SyncMetadata) if m._meta.db_table not in existing]
    if not missing:
        return
    with connection.schema_editor() as editor:
        for model in missing:
            logger.info("Creating table %s", model._meta.db_table)
            editor.create_model(model)


def _require_atomic(using):
    if not transaction.get_connection(using).in_atomic_block:
        raise TransactionManagementError("store writes must run inside transaction.atomic()")


def upsert_country(record, using=DEFAULT_DB_ALIAS):
    """
    Insert the record, or overwrite every mutable column of the row whose
    name matches case-insensitively. The stored name is kept as-is.
    """
    _require_atomic(using)
    existing = (
        Country.objects.using(using)
        .select_for_update()
        .filter(name__iexact=record["name"])
        .first()
    )
    if existing is None:
        return Country.objects.using(using).create(
            name=record["name"],
            **{f: record.get(f) for f in MUTABLE_FIELDS},
        )

    for f in MUTABLE_FIELDS:
        setattr(existing, f, record.get(f))
    existing.save(using=using, update_fields=MUTABLE_FIELDS)
    return existing


def set_last_refreshed(timestamp, using=DEFAULT_DB_ALIAS):
    _require_atomic(using)
    SyncMetadata.objects.using(using).update_or_create(
        meta_key=SyncMetadata.LAST_REFRESHED_AT,
        defaults={"meta_value": timestamp.isoformat(), "updated_at": timestamp},
    )


def get_last_refreshed(using=DEFAULT_DB_ALIAS):
    """Return the last sync timestamp, or None when absent or unparsable."""
    value = (
        SyncMetadata.objects.using(using)
        .filter(meta_key=SyncMetadata.LAST_REFRESHED_AT)
        .values_list("meta_value", flat=True)
        .first()
    )
    if not value:
        return None
    try:
        parsed = parse_datetime(value)
    except ValueError:
        parsed = None
    if not isinstance(parsed, datetime):
        logger.warning("Ignoring unparsable last_refreshed_at value %r", value)
        return None
    return parsed


def list_countries(region=None, currency=None, sort=None, using=DEFAULT_DB_ALIAS):
    qs = Country.objects.using(using).all()
    if region:
        qs = qs.filter(region__iexact=region)
    if currency:
        qs = qs.filter(currency_code__iexact=currency)
    ordering = SORT_ORDERINGS.get(sort)
    if ordering:
        qs = qs.order_by(*ordering)
    return list(qs)


def get_country_by_name(name, using=DEFAULT_DB_ALIAS):
    """Raises Country.DoesNotExist when no country matches."""
    return Country.objects.using(using).get(name__iexact=name)


def delete_country_by_name(name, using=DEFAULT_DB_ALIAS):
    deleted, _ = Country.objects.using(using).filter(name__iexact=name).delete()
    return deleted > 0


def count_countries(using=DEFAULT_DB_ALIAS):
    return Country.objects.using(using).count()


def top_countries_by_gdp(limit=5, using=DEFAULT_DB_ALIAS):
    return list(
        Country.objects.using(using)
        .filter(estimated_gdp__isnull=False)
        .order_by("-estimated_gdp")[:limit]
    )
