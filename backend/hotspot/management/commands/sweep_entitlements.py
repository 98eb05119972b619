from dataclasses import asdict

from django.core.management.base import BaseCommand

from hotspot.entitlements import run_forever, sweep_expired


class Command(BaseCommand):
    help = "Expire elapsed entitlements and revoke network access for their devices."

    def add_arguments(self, parser):
        parser.add_argument("--once", action="store_true", help="Run a single sweep pass and exit.")
        parser.add_argument(
            "--interval",
            type=int,
            default=None,
            help="Seconds between passes. Defaults to ENTITLEMENT_SWEEP_INTERVAL_SECONDS.",
        )

    def handle(self, *args, **options):
        if options["once"]:
            stats = sweep_expired()
            summary = ", ".join(f"{key}={value}" for key, value in asdict(stats).items())
            self.stdout.write(self.style.SUCCESS(f"Sweep complete: {summary}"))
            return

        run_forever(interval_seconds=options["interval"])
