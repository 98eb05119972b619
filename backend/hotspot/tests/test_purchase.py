import threading
from datetime import timedelta
from unittest.mock import patch
from uuid import uuid4

from django.core.exceptions import ValidationError
from django.db import DatabaseError, connection
from django.test import TestCase, TransactionTestCase, override_settings

from hotspot.entitlements import (
    GATEWAY_DECLINED,
    GATEWAY_TIMEOUT,
    AmountMismatch,
    InvalidDevice,
    MissingPaymentMetadata,
    PlanInactive,
    PlanNotFound,
    StorageFailure,
    UnsupportedMethod,
    purchase,
    status,
    store,
)
from hotspot.models import Entitlement, PaymentAttempt, Plan
from hotspot.tools.gateway import ChargeResult, GatewayError, GatewayTimeout


@patch("hotspot.entitlements.engine.grant_access", return_value=True)
@patch("hotspot.entitlements.engine.charge")
class PurchaseTests(TestCase):
    def setUp(self):
        self.daily = Plan.objects.create(name="Daily", duration_hours=24, price=1000)
        self.weekly = Plan.objects.create(name="Weekly", duration_hours=168, price=5000)
        self.device_id = "device_1700000000000_abc123xyz"

    def test_successful_purchase_grants_plan_window(self, charge, grant_access):
        charge.return_value = ChargeResult(success=True, reference="MTN-REF-1")

        result = purchase(self.device_id, self.daily.pk, "mtn", 1000, {"phone_number": "+256 700 123456"})

        self.assertTrue(result.success)
        payment = PaymentAttempt.objects.get(pk=result.payment.pk)
        self.assertEqual(payment.status, PaymentAttempt.Status.COMPLETED)
        self.assertEqual(payment.provider_reference, "MTN-REF-1")
        self.assertEqual(payment.currency, "UGX")
        self.assertEqual(payment.metadata["phone_number"], "+256700123456")
        self.assertEqual(payment.metadata["plan_id"], str(self.daily.pk))

        entitlement = Entitlement.objects.get(payment=payment)
        self.assertEqual(entitlement.status, Entitlement.Status.ACTIVE)
        self.assertEqual(entitlement.expires_at - entitlement.starts_at, timedelta(hours=24))
        self.assertEqual(result.expires_at, entitlement.expires_at)

        charge.assert_called_once_with("mtn", "+256700123456", 1000, attempt_id=str(payment.pk))
        grant_access.assert_called_once_with(self.device_id, entitlement.expires_at)

    def test_amount_mismatch_writes_nothing(self, charge, grant_access):
        with self.assertRaises(AmountMismatch):
            purchase(self.device_id, self.daily.pk, "wallet", 900)

        self.assertEqual(PaymentAttempt.objects.count(), 0)
        self.assertEqual(Entitlement.objects.count(), 0)
        charge.assert_not_called()

    def test_amount_must_be_an_integer(self, charge, grant_access):
        for amount in ("1000", 1000.0, True):
            with self.subTest(amount=amount):
                with self.assertRaises(AmountMismatch):
                    purchase(self.device_id, self.daily.pk, "wallet", amount)
        self.assertEqual(PaymentAttempt.objects.count(), 0)

    def test_inactive_plan_is_rejected(self, charge, grant_access):
        self.daily.is_active = False
        self.daily.save()

        with self.assertRaises(PlanInactive):
            purchase(self.device_id, self.daily.pk, "wallet", 1000)
        self.assertEqual(PaymentAttempt.objects.count(), 0)

    def test_unknown_plan_is_rejected(self, charge, grant_access):
        for plan_id in (uuid4(), "not-a-plan"):
            with self.subTest(plan_id=plan_id):
                with self.assertRaises(PlanNotFound):
                    purchase(self.device_id, plan_id, "wallet", 1000)
        charge.assert_not_called()

    def test_mobile_money_requires_phone_number(self, charge, grant_access):
        with self.assertRaises(MissingPaymentMetadata):
            purchase(self.device_id, self.daily.pk, "airtel", 1000)
        with self.assertRaises(MissingPaymentMetadata):
            purchase(self.device_id, self.daily.pk, "mtn", 1000, {"phone_number": "call me"})
        self.assertEqual(PaymentAttempt.objects.count(), 0)

    def test_empty_device_is_rejected(self, charge, grant_access):
        with self.assertRaises(InvalidDevice):
            purchase("   ", self.daily.pk, "wallet", 1000)

    @override_settings(HOTSPOT_CHARGE_METHODS=["mtn", "airtel"])
    def test_method_must_be_enabled(self, charge, grant_access):
        with self.assertRaises(UnsupportedMethod):
            purchase(self.device_id, self.daily.pk, "wallet", 1000)
        with self.assertRaises(UnsupportedMethod):
            purchase(self.device_id, self.daily.pk, "paypal", 1000)

    def test_declined_charge_marks_payment_failed(self, charge, grant_access):
        charge.return_value = ChargeResult(success=False, reference="MTN-REF-2", reason="insufficient_funds")

        result = purchase(self.device_id, self.daily.pk, "mtn", 1000, {"phone_number": "0700123456"})

        self.assertFalse(result.success)
        self.assertEqual(result.reason, GATEWAY_DECLINED)
        payment = PaymentAttempt.objects.get(pk=result.payment.pk)
        self.assertEqual(payment.status, PaymentAttempt.Status.FAILED)
        self.assertEqual(payment.failure_reason, "insufficient_funds")
        self.assertEqual(Entitlement.objects.count(), 0)
        self.assertFalse(status(self.device_id).connected)
        grant_access.assert_not_called()

    def test_gateway_error_marks_payment_failed(self, charge, grant_access):
        charge.side_effect = GatewayError("Provider request failed with HTTP 502.")

        result = purchase(self.device_id, self.daily.pk, "visa", 1000)

        self.assertFalse(result.success)
        self.assertEqual(result.reason, GATEWAY_DECLINED)
        payment = PaymentAttempt.objects.get(pk=result.payment.pk)
        self.assertEqual(payment.status, PaymentAttempt.Status.FAILED)
        self.assertEqual(payment.failure_reason, "gateway_error")

    def test_gateway_timeout_leaves_payment_pending(self, charge, grant_access):
        charge.side_effect = GatewayTimeout("mtn charge timed out after 30s.")

        result = purchase(self.device_id, self.daily.pk, "mtn", 1000, {"phone_number": "0700123456"})

        self.assertFalse(result.success)
        self.assertEqual(result.reason, GATEWAY_TIMEOUT)
        payment = PaymentAttempt.objects.get(pk=result.payment.pk)
        self.assertEqual(payment.status, PaymentAttempt.Status.PENDING)
        self.assertEqual(payment.failure_reason, GATEWAY_TIMEOUT)
        self.assertEqual(Entitlement.objects.count(), 0)

    def test_storage_failure_after_charge_leaves_orphaned_payment(self, charge, grant_access):
        charge.return_value = ChargeResult(success=True, reference="VISA-REF-9")

        with patch("hotspot.entitlements.engine.store.create", side_effect=DatabaseError("disk full")):
            with self.assertLogs("hotspot.entitlements.engine", level="ERROR"):
                with self.assertRaises(StorageFailure) as raised:
                    purchase(self.device_id, self.daily.pk, "visa", 1000)

        payment = PaymentAttempt.objects.get(pk=raised.exception.payment_id)
        self.assertEqual(payment.status, PaymentAttempt.Status.COMPLETED)
        self.assertEqual(payment.provider_reference, "VISA-REF-9")
        self.assertTrue(payment.metadata["entitlement_missing"])
        self.assertEqual(Entitlement.objects.count(), 0)
        grant_access.assert_not_called()

    def test_each_submission_is_an_independent_attempt(self, charge, grant_access):
        charge.return_value = ChargeResult(success=True, reference="WALLET-1")

        first = purchase(self.device_id, self.daily.pk, "wallet", 1000)
        second = purchase(self.device_id, self.weekly.pk, "wallet", 5000)

        self.assertNotEqual(first.payment.pk, second.payment.pk)
        self.assertEqual(Entitlement.objects.filter(device_id=self.device_id).count(), 2)

        current = status(self.device_id)
        self.assertTrue(current.connected)
        self.assertEqual(current.entitlement.pk, second.entitlement.pk)
        self.assertEqual(current.expires_at, max(first.expires_at, second.expires_at))

    def test_purchase_restates_longest_running_grant(self, charge, grant_access):
        charge.return_value = ChargeResult(success=True, reference="WALLET-3")
        weekly = store.create(device_id=self.device_id, plan=self.weekly)

        result = purchase(self.device_id, self.daily.pk, "wallet", 1000)

        self.assertLess(result.expires_at, weekly.expires_at)
        grant_access.assert_called_once_with(self.device_id, weekly.expires_at)
        self.assertEqual(status(self.device_id).entitlement.pk, weekly.pk)

    def test_window_is_fixed_when_plan_is_later_deactivated(self, charge, grant_access):
        charge.return_value = ChargeResult(success=True, reference="WALLET-2")
        result = purchase(self.device_id, self.daily.pk, "wallet", 1000)

        self.daily.is_active = False
        self.daily.save()

        current = status(self.device_id)
        self.assertTrue(current.connected)
        self.assertEqual(current.expires_at, result.expires_at)


class ConcurrentPurchaseTests(TransactionTestCase):
    def setUp(self):
        self.daily = Plan.objects.create(name="Daily", duration_hours=24, price=1000)
        self.weekly = Plan.objects.create(name="Weekly", duration_hours=168, price=5000)
        self.device_id = "device_1700000000000_twothread"

    def test_overlapping_purchases_keep_both_grants(self):
        first_charging = threading.Event()
        second_charging = threading.Event()
        first_granted = threading.Event()
        granted = []
        results = {}

        def fake_charge(method, account, amount, *, attempt_id):
            if amount == 5000:
                first_charging.set()
                second_charging.wait(timeout=5)
            else:
                second_charging.set()
                first_granted.wait(timeout=5)
            return ChargeResult(success=True, reference=f"WALLET-{attempt_id}")

        def fake_grant(device_id, expires_at):
            granted.append(expires_at)
            first_granted.set()
            return True

        def buy(name, plan, amount):
            try:
                results[name] = purchase(self.device_id, plan.pk, "wallet", amount)
            except Exception as exc:
                results[name] = exc
            finally:
                connection.close()

        with patch("hotspot.entitlements.engine.charge", side_effect=fake_charge), patch(
            "hotspot.entitlements.engine.grant_access", side_effect=fake_grant
        ):
            weekly_buyer = threading.Thread(target=buy, args=("weekly", self.weekly, 5000))
            weekly_buyer.start()
            self.assertTrue(first_charging.wait(timeout=5))
            daily_buyer = threading.Thread(target=buy, args=("daily", self.daily, 1000))
            daily_buyer.start()
            weekly_buyer.join(timeout=10)
            daily_buyer.join(timeout=10)

        self.assertTrue(results["weekly"].success)
        self.assertTrue(results["daily"].success)
        self.assertEqual(Entitlement.objects.filter(device_id=self.device_id).count(), 2)
        self.assertEqual(PaymentAttempt.objects.filter(status=PaymentAttempt.Status.COMPLETED).count(), 2)

        current = status(self.device_id)
        self.assertEqual(current.entitlement.pk, results["weekly"].entitlement.pk)
        self.assertEqual(current.expires_at, results["weekly"].expires_at)
        self.assertGreater(current.expires_at, results["daily"].expires_at)
        self.assertEqual(granted, [results["weekly"].expires_at, results["weekly"].expires_at])


class PlanModelTests(TestCase):
    def test_price_cannot_change_once_charged(self):
        plan = Plan.objects.create(name="Daily", duration_hours=24, price=1000)
        PaymentAttempt.objects.create(device_id="device_a", plan=plan, amount=1000, method="wallet")

        plan.price = 1500
        with self.assertRaises(ValidationError):
            plan.save()

        plan.refresh_from_db()
        plan.name = "Day pass"
        plan.save()
        self.assertEqual(Plan.objects.get(pk=plan.pk).name, "Day pass")

    def test_uncharged_plan_can_be_repriced(self):
        plan = Plan.objects.create(name="Weekly", duration_hours=168, price=5000)
        plan.price = 4500
        plan.save()
        self.assertEqual(Plan.objects.get(pk=plan.pk).price, 4500)

    def test_duration_must_be_positive(self):
        with self.assertRaises(ValidationError):
            Plan.objects.create(name="Broken", duration_hours=0, price=1000)
