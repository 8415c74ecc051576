"""
Tests for countries/services.py - the refresh run end to end against a
test database, with both external sources mocked.
"""

import os
from datetime import datetime, timedelta, timezone
from unittest import mock

import pytest
from django.db import DatabaseError

from countries import services, store, utils
from countries.exceptions import InternalFailure, SourceUnavailable
from countries.models import Country, SyncMetadata
from countries.utils import RawCountry

from .helpers import COUNTRIES_URL, RATES_URL, FixedRng, fake_response

NOW = datetime(2025, 10, 22, 12, 0, tzinfo=timezone.utc)


def snapshot():
    countries = list(Country.objects.order_by("name").values())
    metadata = list(SyncMetadata.objects.values())
    return countries, metadata


class TestBuildCountryRecord:

    def test_no_currency_gives_zero_estimate(self):
        raw = RawCountry(name="Atlantis", population=1_000_000, currency_codes=[])
        record = services.build_country_record(raw, {"USD": 1.0}, FixedRng(), NOW)

        assert record["currency_code"] is None
        assert record["exchange_rate"] is None
        assert record["estimated_gdp"] == 0

    def test_unknown_currency_gives_null_estimate(self):
        raw = RawCountry(name="Atlantis", population=1_000_000, currency_codes=["XYZ"])
        record = services.build_country_record(raw, {"USD": 1.0}, FixedRng(), NOW)

        assert record["currency_code"] == "XYZ"
        assert record["exchange_rate"] is None
        assert record["estimated_gdp"] is None

    def test_known_currency_is_estimated(self):
        raw = RawCountry(name="Atlantis", population=1_000_000, currency_codes=["USD"])
        record = services.build_country_record(raw, {"USD": 2.0}, FixedRng(1500), NOW)

        assert record["currency_code"] == "USD"
        assert record["exchange_rate"] == 2.0
        assert record["estimated_gdp"] == 750_000_000

    def test_uses_first_currency(self):
        raw = RawCountry(name="Zimbabwe", population=10, currency_codes=["BWP", "USD"])
        record = services.build_country_record(raw, {"BWP": 10.0, "USD": 1.0}, FixedRng(1000), NOW)

        assert record["currency_code"] == "BWP"
        assert record["estimated_gdp"] == 1000

    def test_non_positive_rate_is_unquoted(self):
        raw = RawCountry(name="Atlantis", population=10, currency_codes=["ZZZ"])
        record = services.build_country_record(raw, {"ZZZ": 0.0}, FixedRng(), NOW)

        assert record["exchange_rate"] is None
        assert record["estimated_gdp"] is None

    def test_copies_descriptive_fields(self):
        raw = RawCountry(name="Ghana", population=3, capital="Accra", region="Africa",
                         flag="https://flagcdn.com/gh.svg", currency_codes=["GHS"])
        record = services.build_country_record(raw, {"GHS": 15.0}, FixedRng(), NOW)

        assert record["capital"] == "Accra"
        assert record["region"] == "Africa"
        assert record["flag_url"] == "https://flagcdn.com/gh.svg"
        assert record["last_refreshed_at"] == NOW


@pytest.mark.django_db
class TestRefreshCountries:

    def test_success(self, config, external_apis, renderer):
        result = services.refresh_countries(config, rng=FixedRng(1500), now=NOW, renderer=renderer)

        assert result.processed_count == 3
        assert result.last_refreshed_at == NOW
        assert result.skipped == []
        assert Country.objects.count() == 3
        assert store.get_last_refreshed() == NOW

        usa = Country.objects.get(name="United States of America")
        assert usa.exchange_rate == 1.0
        assert usa.estimated_gdp == 329484123 * 1500
        assert usa.last_refreshed_at == NOW

        renderer.assert_called_once_with(config)

    def test_processed_count_excludes_skipped(self, config, external_apis, countries_payload, renderer):
        countries_payload.extend([
            {"name": "Ghost Town", "population": 0, "currencies": [{"code": "USD"}]},
            {"name": "Atlantis", "population": 1000},
            {"name": "", "population": 5, "currencies": [{"code": "USD"}]},
        ])

        result = services.refresh_countries(config, rng=FixedRng(), now=NOW, renderer=renderer)

        assert result.processed_count == 3
        assert {s["name"] for s in result.skipped} == {"Ghost Town", "Atlantis"}
        ghost = next(s for s in result.skipped if s["name"] == "Ghost Town")
        assert ghost["details"] == {"population": "must be greater than 0"}
        assert not Country.objects.filter(name="Ghost Town").exists()
        assert Country.objects.filter(name="Nigeria").exists()

    def test_skip_leaves_existing_record_untouched(self, config, external_apis, countries_payload, renderer):
        Country.objects.create(name="Ghana", population=1, currency_code="GHS", estimated_gdp=42.0)
        countries_payload[1]["population"] = 0

        services.refresh_countries(config, rng=FixedRng(), now=NOW, renderer=renderer)

        ghana = Country.objects.get(name="Ghana")
        assert ghana.population == 1
        assert ghana.estimated_gdp == 42.0

    def test_unknown_currency_is_stored_with_null_estimate(self, config, external_apis, countries_payload, renderer):
        countries_payload[0]["currencies"] = [{"code": "XYZ"}]
        countries_payload[0]["population"] = 1_000_000

        services.refresh_countries(config, rng=FixedRng(), now=NOW, renderer=renderer)

        nigeria = Country.objects.get(name="Nigeria")
        assert nigeria.currency_code == "XYZ"
        assert nigeria.exchange_rate is None
        assert nigeria.estimated_gdp is None

    def test_idempotent_with_same_seed(self, config, external_apis, renderer):
        services.refresh_countries(config, rng=utils.make_rng(42), now=NOW, renderer=renderer)
        first = list(Country.objects.order_by("name").values("id", "name", "population", "estimated_gdp"))

        later = NOW + timedelta(hours=1)
        services.refresh_countries(config, rng=utils.make_rng(42), now=later, renderer=renderer)
        second = list(Country.objects.order_by("name").values("id", "name", "population", "estimated_gdp"))

        assert first == second
        assert store.get_last_refreshed() == later
        assert set(Country.objects.values_list("last_refreshed_at", flat=True)) == {later}

    def test_upsert_by_name_across_runs(self, config, external_apis, renderer):
        external_apis.responses[COUNTRIES_URL] = lambda: fake_response(
            [{"name": "Wakanda", "population": 5, "currencies": [{"code": "USD"}]}])
        services.refresh_countries(config, rng=FixedRng(), now=NOW, renderer=renderer)

        external_apis.responses[COUNTRIES_URL] = lambda: fake_response(
            [{"name": "wakanda", "population": 9, "currencies": [{"code": "USD"}]}])
        services.refresh_countries(config, rng=FixedRng(), now=NOW, renderer=renderer)

        wakanda = Country.objects.get()
        assert wakanda.name == "Wakanda"
        assert wakanda.population == 9

    @pytest.mark.parametrize("failing_url, source", [
        (COUNTRIES_URL, "directory"),
        (RATES_URL, "rates"),
    ])
    def test_source_failure_leaves_store_untouched(self, config, external_apis, renderer, failing_url, source):
        services.refresh_countries(config, rng=FixedRng(), now=NOW, renderer=renderer)
        before = snapshot()
        renderer.reset_mock()

        external_apis.responses[failing_url] = lambda: fake_response(status_code=503)
        with mock.patch("countries.services.store.ensure_schema") as ensure_schema:
            with pytest.raises(SourceUnavailable) as excinfo:
                services.refresh_countries(config, rng=FixedRng(), now=NOW + timedelta(days=1),
                                           renderer=renderer)

        assert excinfo.value.source == source
        ensure_schema.assert_not_called()
        renderer.assert_not_called()
        assert snapshot() == before

    def test_store_error_rolls_back_whole_run(self, config, external_apis, renderer, monkeypatch):
        real_upsert = store.upsert_country
        calls = []

        def flaky_upsert(record):
            calls.append(record["name"])
            if len(calls) == 2:
                raise DatabaseError("disk full")
            return real_upsert(record)

        monkeypatch.setattr(store, "upsert_country", flaky_upsert)

        with pytest.raises(InternalFailure):
            services.refresh_countries(config, rng=FixedRng(), now=NOW, renderer=renderer)

        assert calls == ["Nigeria", "Ghana"]
        assert Country.objects.count() == 0
        assert store.get_last_refreshed() is None
        renderer.assert_not_called()

    def test_metadata_error_rolls_back_upserts(self, config, external_apis, renderer, monkeypatch):
        monkeypatch.setattr(store, "set_last_refreshed", mock.Mock(side_effect=DatabaseError("locked")))

        with pytest.raises(InternalFailure):
            services.refresh_countries(config, rng=FixedRng(), now=NOW, renderer=renderer)

        assert Country.objects.count() == 0

    def test_schema_error_is_internal_failure(self, config, external_apis, renderer, monkeypatch):
        monkeypatch.setattr(store, "ensure_schema", mock.Mock(side_effect=DatabaseError("no access")))

        with pytest.raises(InternalFailure):
            services.refresh_countries(config, rng=FixedRng(), now=NOW, renderer=renderer)

    def test_default_renderer_is_spawned(self, config, external_apis):
        with mock.patch("countries.services.spawn_summary_render") as spawn:
            services.refresh_countries(config, rng=FixedRng(), now=NOW)
        spawn.assert_called_once_with(config)

    def test_render_spawn_failure_keeps_committed_result(self, config, external_apis):
        with mock.patch("countries.services.threading.Thread") as thread_cls:
            thread_cls.return_value.start.side_effect = RuntimeError("can't start new thread")
            result = services.refresh_countries(config, rng=FixedRng(), now=NOW)

        assert result.processed_count == 3
        assert Country.objects.count() == 3
        assert store.get_last_refreshed() == NOW


@pytest.mark.django_db
class TestRenderSummary:

    def test_writes_image_from_store(self, config, external_apis, renderer):
        services.refresh_countries(config, rng=FixedRng(), now=NOW, renderer=renderer)

        path = services.render_summary(config)

        assert path == config.summary_image_path
        assert os.path.exists(path)

    def test_background_failure_is_swallowed(self, config):
        with mock.patch("countries.services.render_summary", side_effect=OSError("read-only")):
            with mock.patch("countries.services.connections") as conns:
                services._render_in_background(config)
        conns.close_all.assert_called_once_with()

    def test_spawn_starts_daemon_thread(self, config):
        with mock.patch("countries.services.threading.Thread") as thread_cls:
            assert services.spawn_summary_render(config) is None

        _, kwargs = thread_cls.call_args
        assert kwargs["daemon"] is True
        assert kwargs["args"] == (config,)
        thread_cls.return_value.start.assert_called_once_with()
