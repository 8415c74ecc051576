"""
Refresh orchestration: fetch both external sources, merge them into
country records and upsert everything inside a single transaction.

A run either commits every upsert together with the metadata timestamp or
leaves the store untouched. The summary image is regenerated afterwards by
a detached, best-effort background thread.
"""
import logging
import threading
from dataclasses import dataclass, field

from django.db import DatabaseError, connections, transaction

from . import store, utils
from .exceptions import InternalFailure
from .serializers import validate_country_record

logger = logging.getLogger(__name__)

# Serialises overlapping runs within this process.
_refresh_lock = threading.Lock()


@dataclass
class RefreshResult:
    processed_count: int
    last_refreshed_at: object
    skipped: list = field(default_factory=list)


def build_country_record(raw, rates, rng, now):
    """Derive currency, exchange rate and estimated GDP for one country."""
    currency_code = raw.currency_codes[0] if raw.currency_codes else None
    exchange_rate = None

    if not currency_code:
        currency_code = None
        estimated_gdp = 0.0
    else:
        rate = rates.get(currency_code)
        if rate is not None and rate > 0:
            exchange_rate = rate
            estimated_gdp = utils.estimate_gdp(raw.population, rate, rng)
        else:
            estimated_gdp = None

    return {
        "name": raw.name,
        "capital": raw.capital,
        "region": raw.region,
        "population": raw.population,
        "currency_code": currency_code,
        "exchange_rate": exchange_rate,
        "estimated_gdp": estimated_gdp,
        "flag_url": raw.flag,
        "last_refreshed_at": now,
    }


def refresh_countries(config, rng=None, now=None, renderer=None):
    """
    Run one synchronization.

    Raises SourceUnavailable when either source fails (nothing is written)
    and InternalFailure when the transactional phase fails (everything is
    rolled back). Records failing validation are skipped and reported in
    RefreshResult.skipped.
    """
    with _refresh_lock:
        result = _run(config, rng or utils.make_rng(), now or utils.get_now())

    try:
        (renderer or spawn_summary_render)(config)
    except Exception:
        logger.warning("Could not start summary image generation", exc_info=True)
    return result


def _run(config, rng, now):
    logger.info("Refresh started")
    countries_data = utils.fetch_countries(config)
    rates = utils.fetch_exchange_rates(config)

    try:
        store.ensure_schema()
    except DatabaseError as exc:
        logger.exception("Schema bootstrap failed")
        raise InternalFailure("schema bootstrap failed") from exc

    processed = 0
    skipped = []
    try:
        with transaction.atomic():
            for raw in countries_data:
                if not raw.name:
                    logger.warning("Country name missing from external API, skipping")
                    continue

                record = build_country_record(raw, rates, rng, now)
                errors = validate_country_record(record)
                if errors:
                    logger.warning("Country %r failed validation: %s", raw.name, errors)
                    skipped.append({"name": raw.name, "details": errors})
                    continue

                store.upsert_country(record)
                processed += 1

            store.set_last_refreshed(now)
    except DatabaseError as exc:
        logger.exception("Refresh transaction failed, rolled back")
        raise InternalFailure("refresh transaction failed") from exc

    logger.info("Refresh committed: %d processed, %d skipped", processed, len(skipped))
    return RefreshResult(processed_count=processed, last_refreshed_at=now, skipped=skipped)


def render_summary(config):
    """Regenerate the summary image from the committed store."""
    total = store.count_countries()
    top5 = store.top_countries_by_gdp(5)
    last = store.get_last_refreshed()
    return utils.generate_summary_image(
        total, top5, last.isoformat() if last else None, config.summary_image_path
    )


def _render_in_background(config):
    try:
        path = render_summary(config)
        logger.info("Summary image generated at %s", path)
    except Exception:
        logger.warning("Summary image generation failed", exc_info=True)
    finally:
        connections.close_all()


def spawn_summary_render(config):
    """
    Fire-and-forget: start a daemon thread that regenerates the summary
    image. No handle is kept and failures are only logged.
    """
    threading.Thread(
        target=_render_in_background, args=(config,),
        name="summary-render", daemon=True,
    ).start()
