from django.core.management.base import BaseCommand, CommandError
from django.db import DatabaseError

from hotspot.entitlements import (
    InvalidTransition,
    find_unlinked_payments,
    find_unresolved_payments,
    reconcile_payment,
)
from hotspot.entitlements.reconciliation import ACTION_CONFIRM, ACTION_FAIL, ACTION_FLAG, ACTION_GRANT

OUTCOMES = {
    ACTION_GRANT: "granted until {expires_at}",
    ACTION_FLAG: "flagged for refund",
    ACTION_CONFIRM: "confirmed, access until {expires_at}",
    ACTION_FAIL: "closed as failed",
}


class Command(BaseCommand):
    help = (
        "List completed payments without access and timed-out pending payments, "
        "optionally resolving them."
    )

    def add_arguments(self, parser):
        group = parser.add_mutually_exclusive_group()
        group.add_argument("--grant", action="store_true", help="Grant access for every unlinked payment.")
        group.add_argument("--flag", action="store_true", help="Flag every unlinked payment for a refund.")
        group.add_argument(
            "--confirm",
            action="store_true",
            help="Mark timed-out payments completed and grant access (provider confirmed the charge).",
        )
        group.add_argument("--fail", action="store_true", help="Close timed-out payments as failed.")
        parser.add_argument("--payment", help="Only act on this payment id.")

    def _describe(self, payment) -> str:
        return (
            f"{payment.pk} device={payment.device_id} plan={payment.plan.name} "
            f"amount={payment.amount} {payment.currency} reference={payment.provider_reference or '-'}"
        )

    def handle(self, *args, **options):
        action = next((name for name in OUTCOMES if options[name]), None)
        only = str(options.get("payment") or "").strip()

        unlinked = [payment for payment in find_unlinked_payments() if not only or str(payment.pk) == only]
        unresolved = [payment for payment in find_unresolved_payments() if not only or str(payment.pk) == only]

        if action is None:
            self.stdout.write(f"Unlinked payments: {len(unlinked)}")
            for payment in unlinked:
                self.stdout.write(f"  {self._describe(payment)}")
            self.stdout.write(f"Timed-out payments: {len(unresolved)}")
            for payment in unresolved:
                self.stdout.write(f"  {self._describe(payment)}")
            return

        targets = unresolved if action in (ACTION_CONFIRM, ACTION_FAIL) else unlinked
        if not targets:
            self.stdout.write("Nothing to reconcile.")
            return

        for payment in targets:
            line = self._describe(payment)
            try:
                entitlement = reconcile_payment(payment, action)
            except (InvalidTransition, DatabaseError) as exc:
                raise CommandError(f"Could not reconcile payment {payment.pk}: {exc}") from exc

            outcome = OUTCOMES[action].format(expires_at=entitlement.expires_at.isoformat() if entitlement else "")
            style = self.style.SUCCESS if entitlement is not None else self.style.WARNING
            self.stdout.write(style(f"{line} -> {outcome}"))
