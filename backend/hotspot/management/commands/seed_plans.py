from django.core.management.base import BaseCommand

from hotspot.models import Plan

DEFAULT_PLANS = (
    ("Daily", 24, 1000),
    ("Weekly", 168, 5000),
    ("Monthly", 720, 18000),
)


class Command(BaseCommand):
    help = "Create the default Daily, Weekly and Monthly plans if they are missing."

    def handle(self, *args, **options):
        created_count = 0
        for name, duration_hours, price in DEFAULT_PLANS:
            _, created = Plan.objects.get_or_create(
                name=name,
                defaults={"duration_hours": duration_hours, "price": price, "is_active": True},
            )
            if created:
                created_count += 1
        self.stdout.write(self.style.SUCCESS(f"Seeded {created_count} plan(s)."))
