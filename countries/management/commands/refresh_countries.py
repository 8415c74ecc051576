from django.core.management.base import BaseCommand, CommandError

from countries import services, utils
from countries.exceptions import InternalFailure, SourceUnavailable


class Command(BaseCommand):
    help = "Fetch countries and exchange rates and refresh the local store."

    def add_arguments(self, parser):
        parser.add_argument("--seed", type=int, default=None, help="Seed for the GDP multiplier.")

    def handle(self, *args, **options):
        config = utils.Config.from_settings()
        try:
            result = services.refresh_countries(config, rng=utils.make_rng(options["seed"]))
        except SourceUnavailable as e:
            raise CommandError(f"External data source unavailable: {e}") from e
        except InternalFailure as e:
            raise CommandError(f"Refresh failed: {e}") from e

        self.stdout.write(self.style.SUCCESS(
            f"Refreshed {result.processed_count} countries at {result.last_refreshed_at.isoformat()}"
        ))
        for skipped in result.skipped:
            self.stdout.write(f"Skipped {skipped['name']}: {skipped['details']}")
