"""
Pytest configuration and shared fixtures for the countries tests.
"""

from unittest import mock

import pytest

from countries.utils import Config

from .helpers import COUNTRIES_URL, RATES_URL, fake_response


# ============================================================
# CONFIG
# ============================================================

@pytest.fixture
def config(tmp_path):
    return Config(
        environment="development",
        cache_dir=str(tmp_path / "cache"),
        countries_api=COUNTRIES_URL,
        exchange_api=RATES_URL,
        timeout=5,
    )


# ============================================================
# EXTERNAL PAYLOADS
# ============================================================

@pytest.fixture
def countries_payload():
    return [
        {
            "name": "Nigeria",
            "capital": "Abuja",
            "region": "Africa",
            "population": 206139589,
            "flag": "https://flagcdn.com/ng.svg",
            "currencies": [{"code": "NGN", "name": "Nigerian naira", "symbol": "₦"}],
        },
        {
            "name": "Ghana",
            "capital": "Accra",
            "region": "Africa",
            "population": 31072940,
            "flag": "https://flagcdn.com/gh.svg",
            "currencies": [{"code": "GHS", "name": "Ghanaian cedi", "symbol": "₵"}],
        },
        {
            "name": "United States of America",
            "capital": "Washington, D.C.",
            "region": "Americas",
            "population": 329484123,
            "flag": "https://flagcdn.com/us.svg",
            "currencies": [{"code": "USD", "name": "United States dollar", "symbol": "$"}],
        },
    ]


@pytest.fixture
def rates_payload():
    return {
        "result": "success",
        "base_code": "USD",
        "rates": {"USD": 1, "NGN": 1600.23, "GHS": 15.34},
    }


@pytest.fixture
def external_apis(countries_payload, rates_payload):
    """
    Patch requests.get so both sources answer from the payload fixtures.
    Tests may mutate `responses` to change what a URL returns.
    """
    responses = {
        COUNTRIES_URL: lambda: fake_response(countries_payload),
        RATES_URL: lambda: fake_response(rates_payload),
    }

    def get(url, timeout=None):
        return responses[url]()

    with mock.patch("countries.utils.requests.get", side_effect=get) as patched:
        patched.responses = responses
        yield patched


@pytest.fixture
def renderer():
    return mock.Mock(name="renderer")
