import logging
import os
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone

import requests
from django.conf import settings
from PIL import Image, ImageDraw, ImageFont
from requests.exceptions import RequestException

from .exceptions import SourceUnavailable

logger = logging.getLogger(__name__)

COUNTRIES_API = 'https://restcountries.com/v2/all?fields=name,capital,region,population,flag,currencies'
EXCHANGE_API = 'https://open.er-api.com/v6/latest/USD'

DIRECTORY_SOURCE = "directory"
RATES_SOURCE = "rates"

MULTIPLIER_MIN = 1000
MULTIPLIER_MAX = 2000


@dataclass(frozen=True)
class Config:
    environment: str = "production"  # "development" locally
    cache_dir: str = "cache"
    countries_api: str = COUNTRIES_API
    exchange_api: str = EXCHANGE_API
    timeout: float = 15
    allowed_origins: tuple = ("*",)

    @classmethod
    def from_settings(cls):
        """Build the configuration from Django settings."""
        return cls(
            environment=settings.APP_ENV,
            cache_dir=settings.SUMMARY_CACHE_DIR,
            countries_api=settings.COUNTRIES_API_URL,
            exchange_api=settings.EXCHANGE_API_URL,
            timeout=settings.EXTERNAL_API_TIMEOUT,
            allowed_origins=tuple(settings.CORS_ALLOWED_ORIGINS),
        )

    @property
    def is_production(self):
        return self.environment == "production"

    @property
    def cache_path(self) -> str:
        """Return absolute cache directory path (writable)."""
        if self.is_production:
            path = "/tmp/cache"
        else:
            path = os.path.abspath(self.cache_dir)
        os.makedirs(path, exist_ok=True)
        return path

    @property
    def summary_image_path(self) -> str:
        """Return full path to the summary image in the writable cache."""
        return os.path.join(self.cache_path, "summary.png")


@dataclass(frozen=True)
class RawCountry:
    name: str
    population: int = 0
    capital: str = None
    region: str = None
    flag: str = None
    currency_codes: list = field(default_factory=list)


def _optional_text(value):
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValueError(f"expected text, got {type(value).__name__}")
    return value


def decode_country(item):
    """Decode one directory entry, raising ValueError on a malformed shape."""
    if not isinstance(item, dict):
        raise ValueError("country entry is not an object")

    population = item.get("population") or 0
    if isinstance(population, bool) or not isinstance(population, int):
        raise ValueError(f"population is not an integer: {population!r}")

    codes = []
    for currency in item.get("currencies") or []:
        if not isinstance(currency, dict):
            raise ValueError("currency entry is not an object")
        codes.append(_optional_text(currency.get("code")))

    return RawCountry(
        name=_optional_text(item.get("name")) or "",
        population=population,
        capital=_optional_text(item.get("capital")),
        region=_optional_text(item.get("region")),
        flag=_optional_text(item.get("flag")),
        currency_codes=codes,
    )


def fetch_countries(config):
    try:
        resp = requests.get(config.countries_api, timeout=config.timeout)
        resp.raise_for_status()
        payload = resp.json()
        if not isinstance(payload, list):
            raise ValueError("directory payload is not an array")
        return [decode_country(item) for item in payload]
    except (RequestException, ValueError) as exc:
        logger.warning("Failed fetching countries from %s: %s", config.countries_api, exc)
        raise SourceUnavailable(DIRECTORY_SOURCE) from exc


def fetch_exchange_rates(config):
    try:
        resp = requests.get(config.exchange_api, timeout=config.timeout)
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            raise ValueError("rates payload is not an object")
        # API returns 'rates' mapping
        rates = data.get("rates")
        if not isinstance(rates, dict):
            raise ValueError("rates payload has no 'rates' mapping")
        for code, rate in rates.items():
            if isinstance(rate, bool) or not isinstance(rate, (int, float)):
                raise ValueError(f"rate for {code} is not a number: {rate!r}")
        return {code: float(rate) for code, rate in rates.items()}
    except (RequestException, ValueError) as exc:
        logger.warning("Failed fetching exchange rates from %s: %s", config.exchange_api, exc)
        raise SourceUnavailable(RATES_SOURCE) from exc


def make_multiplier(rng):
    return rng.randint(MULTIPLIER_MIN, MULTIPLIER_MAX)


def estimate_gdp(population, rate, rng):
    """population * random multiplier in [1000, 2000] / exchange rate."""
    return population * make_multiplier(rng) / rate


def make_rng(seed=None):
    return random.Random(seed)


def _load_fonts():
    try:
        return ImageFont.truetype("arial.ttf", 28), ImageFont.truetype("arial.ttf", 20)
    except OSError:
        return ImageFont.load_default(), ImageFont.load_default()


def generate_summary_image(total_countries, top5, timestamp, path):
    """
    Generate a summary PNG showing total countries, top 5 GDP countries,
    and last refresh timestamp. Saves image to path.
    """
    img = Image.new("RGB", (800, 500), color="white")
    draw = ImageDraw.Draw(img)
    font_title, font_body = _load_fonts()

    # Header
    draw.text((20, 20), "Country Summary Report", fill="black", font=font_title)
    draw.text((20, 70), f"Total Countries: {total_countries}", fill="black", font=font_body)
    draw.text((20, 120), "Top 5 Countries by Estimated GDP:", fill="black", font=font_body)

    y = 160
    if not top5:
        draw.text((40, y), "No GDP data available.", fill="gray", font=font_body)
    else:
        for i, c in enumerate(top5, start=1):
            draw.text((40, y), f"{i}. {c.name}: {round(c.estimated_gdp or 0, 2):,}", fill="blue", font=font_body)
            y += 30

    # Timestamp
    draw.text((20, 400), f"Last Refresh: {timestamp or 'never'}", fill="black", font=font_body)

    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    img.save(path, "PNG")
    return path


def get_now():
    """Return current UTC datetime (aware)."""
    return datetime.now(timezone.utc)
