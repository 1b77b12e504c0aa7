# app/highfives/management/commands/sweep_highfives.py
from django.core.management.base import BaseCommand

from app.highfives.services import get_highfive_service, run_sync


class Command(BaseCommand):
    help = (
        "Expire pending high fives whose timer was lost (e.g. after a restart) "
        "and apply the stale session policy"
    )

    def handle(self, *args, **options):
        service = get_highfive_service()
        result = run_sync(service.sweep)

        self.stdout.write(
            self.style.SUCCESS(
                f"✅ expired={len(result['expiredHighFives'])} "
                f"removed_sessions={len(result['removedSessions'])} "
                f"removed_high_fives={len(result['removedHighFives'])} "
                f"(policy={service.config.stale_session_policy})"
            )
        )
