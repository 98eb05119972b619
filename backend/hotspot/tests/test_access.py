import re
from datetime import timedelta
from unittest.mock import patch

from django.test import SimpleTestCase, TestCase
from django.utils import timezone

from hotspot.entitlements import (
    EntitlementNotFound,
    InvalidTransition,
    MissingPaymentMetadata,
    TimeRemaining,
    disconnect,
    status,
)
from hotspot.entitlements import store
from hotspot.entitlements.devices import issue_device_id, normalize_device_id, normalize_phone_number
from hotspot.models import Entitlement, Plan


class DeviceStatusTests(TestCase):
    def setUp(self):
        self.daily = Plan.objects.create(name="Daily", duration_hours=24, price=1000)
        self.weekly = Plan.objects.create(name="Weekly", duration_hours=168, price=5000)
        self.device_id = "device_1700000000000_statusdev"
        self.now = timezone.now()

    def test_device_without_entitlement_is_not_connected(self):
        result = status(self.device_id, now=self.now)

        self.assertFalse(result.connected)
        self.assertIsNone(result.entitlement)
        self.assertIsNone(result.time_remaining)
        self.assertIsNone(result.plan)

    def test_fresh_daily_grant_reports_full_window(self):
        entitlement = store.create(device_id=self.device_id, plan=self.daily, starts_at=self.now)

        result = status(self.device_id, now=self.now)

        self.assertTrue(result.connected)
        self.assertEqual(result.entitlement.pk, entitlement.pk)
        self.assertEqual(result.plan.name, "Daily")
        self.assertEqual(result.time_remaining.hours, 24)
        self.assertEqual(result.time_remaining.minutes, 0)
        self.assertEqual(result.time_remaining.display, "24h 0m")
        self.assertFalse(result.expiring_soon)

    def test_elapsed_grant_is_not_connected_without_a_write(self):
        entitlement = store.create(device_id=self.device_id, plan=self.daily, starts_at=self.now)

        result = status(self.device_id, now=self.now + timedelta(hours=25))

        self.assertFalse(result.connected)
        entitlement.refresh_from_db()
        self.assertEqual(entitlement.status, Entitlement.Status.ACTIVE)

    def test_grant_is_not_current_at_its_expiry_instant(self):
        entitlement = store.create(device_id=self.device_id, plan=self.daily, starts_at=self.now)

        self.assertFalse(status(self.device_id, now=entitlement.expires_at).connected)
        self.assertTrue(status(self.device_id, now=entitlement.expires_at - timedelta(seconds=1)).connected)

    def test_expiring_soon_inside_warning_window(self):
        store.create(device_id=self.device_id, plan=self.daily, starts_at=self.now)

        result = status(self.device_id, now=self.now + timedelta(hours=23))

        self.assertTrue(result.expiring_soon)
        self.assertEqual(result.time_remaining.display, "1h 0m")

    def test_overlapping_grants_report_the_latest_expiry(self):
        store.create(device_id=self.device_id, plan=self.daily, starts_at=self.now)
        weekly = store.create(device_id=self.device_id, plan=self.weekly, starts_at=self.now)

        result = status(self.device_id, now=self.now + timedelta(hours=1))

        self.assertEqual(result.entitlement.pk, weekly.pk)
        self.assertEqual(result.time_remaining.display, "6d 23h")

    def test_cancelled_grant_is_not_current(self):
        entitlement = store.create(device_id=self.device_id, plan=self.daily, starts_at=self.now)
        store.set_status(entitlement.pk, Entitlement.Status.CANCELLED)

        self.assertFalse(status(self.device_id, now=self.now).connected)


class TimeRemainingTests(SimpleTestCase):
    def test_display_formats(self):
        self.assertEqual(TimeRemaining(total_seconds=45 * 60).display, "45m")
        self.assertEqual(TimeRemaining(total_seconds=5 * 3600 + 30 * 60).display, "5h 30m")
        self.assertEqual(TimeRemaining(total_seconds=26 * 3600 + 5 * 60).display, "1d 2h")
        self.assertEqual(TimeRemaining(total_seconds=0).display, "0m")

    def test_until_never_goes_negative(self):
        now = timezone.now()
        self.assertEqual(TimeRemaining.until(now - timedelta(minutes=5), now).total_seconds, 0)


class EntitlementStoreTests(TestCase):
    def setUp(self):
        self.plan = Plan.objects.create(name="Daily", duration_hours=24, price=1000)
        self.entitlement = store.create(device_id="device_store", plan=self.plan)

    def test_set_status_reports_whether_it_changed_the_row(self):
        self.assertTrue(store.set_status(self.entitlement.pk, Entitlement.Status.EXPIRED))
        self.assertFalse(store.set_status(self.entitlement.pk, Entitlement.Status.EXPIRED))

    def test_terminal_states_cannot_be_left(self):
        store.set_status(self.entitlement.pk, Entitlement.Status.EXPIRED)

        with self.assertRaises(InvalidTransition):
            store.set_status(self.entitlement.pk, Entitlement.Status.ACTIVE)
        with self.assertRaises(InvalidTransition):
            store.set_status(self.entitlement.pk, Entitlement.Status.CANCELLED)

    def test_conditional_update_misses_when_status_moved(self):
        store.set_status(self.entitlement.pk, Entitlement.Status.CANCELLED)

        self.assertFalse(
            store.set_status(
                self.entitlement.pk,
                Entitlement.Status.EXPIRED,
                expected=Entitlement.Status.ACTIVE,
            )
        )
        self.entitlement.refresh_from_db()
        self.assertEqual(self.entitlement.status, Entitlement.Status.CANCELLED)


@patch("hotspot.entitlements.engine.revoke_access", return_value=True)
@patch("hotspot.entitlements.engine.grant_access", return_value=True)
class DisconnectTests(TestCase):
    def setUp(self):
        self.daily = Plan.objects.create(name="Daily", duration_hours=24, price=1000)
        self.weekly = Plan.objects.create(name="Weekly", duration_hours=168, price=5000)
        self.device_id = "device_1700000000000_disconnect"

    def test_disconnect_cancels_and_revokes_once(self, grant_access, revoke_access):
        entitlement = store.create(device_id=self.device_id, plan=self.daily)

        cancelled, changed = disconnect(entitlement.pk)
        self.assertTrue(changed)
        self.assertEqual(cancelled.status, Entitlement.Status.CANCELLED)
        self.assertFalse(status(self.device_id).connected)

        again, changed_again = disconnect(entitlement.pk)
        self.assertFalse(changed_again)
        self.assertEqual(again.status, Entitlement.Status.CANCELLED)

        revoke_access.assert_called_once_with(self.device_id)
        grant_access.assert_not_called()

    def test_disconnect_keeps_access_from_another_grant(self, grant_access, revoke_access):
        daily = store.create(device_id=self.device_id, plan=self.daily)
        weekly = store.create(device_id=self.device_id, plan=self.weekly)

        disconnect(daily.pk)

        grant_access.assert_called_once_with(self.device_id, weekly.expires_at)
        revoke_access.assert_not_called()
        self.assertTrue(status(self.device_id).connected)

    def test_disconnect_of_expired_grant_is_a_noop(self, grant_access, revoke_access):
        entitlement = store.create(device_id=self.device_id, plan=self.daily)
        store.set_status(entitlement.pk, Entitlement.Status.EXPIRED)

        result, changed = disconnect(entitlement.pk)

        self.assertFalse(changed)
        self.assertEqual(result.status, Entitlement.Status.EXPIRED)
        revoke_access.assert_not_called()

    def test_unknown_entitlement_raises(self, grant_access, revoke_access):
        with self.assertRaises(EntitlementNotFound):
            disconnect("00000000-0000-0000-0000-000000000000")
        with self.assertRaises(EntitlementNotFound):
            disconnect("not-an-id")


class DeviceIdentityTests(SimpleTestCase):
    def test_issued_ids_are_unique_and_well_formed(self):
        first = issue_device_id()
        second = issue_device_id()

        self.assertRegex(first, re.compile(r"^device_\d{13}_[0-9a-z]{9}$"))
        self.assertNotEqual(first, second)

    def test_device_id_is_trimmed(self):
        self.assertEqual(normalize_device_id("  device_abc  "), "device_abc")

    def test_phone_number_is_normalized(self):
        self.assertEqual(normalize_phone_number("0700-123 456"), "0700123456")
        self.assertEqual(normalize_phone_number("+256 (700) 123456"), "+256700123456")
        with self.assertRaises(MissingPaymentMetadata):
            normalize_phone_number("12")
