from decimal import Decimal

from django.test import TestCase
from rest_framework.test import APIClient

from apps.commissions.models import Attribution, PayoutRequest
from apps.commissions.payouts import approve_payout, settle_payout, submit_payout_request
from apps.commissions.services import record_attribution

from .helpers import BANK_FORM, completion, make_affiliate, make_user

EVENTS_TOKEN = {"HTTP_X_COMMISSION_EVENTS_TOKEN": "test-events-token"}


class OrderEventApiTest(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.affiliate = make_affiliate(make_user("asha@example.com"))
        self.payload = {
            "orderId": "ORD-1",
            "orderNumber": "100045",
            "baseAmount": "1000.00",
            "referralCode": self.affiliate.code,
            "completedAt": "2025-03-10T12:00:00+05:30",
            "clickId": "9f1c",
        }

    def test_requires_token_or_admin(self):
        response = self.client.post("/api/commissions/events/order-completed/", self.payload, format="json")
        self.assertIn(response.status_code, (401, 403))

        response = self.client.post(
            "/api/commissions/events/order-completed/",
            self.payload,
            format="json",
            HTTP_X_COMMISSION_EVENTS_TOKEN="wrong",
        )
        self.assertIn(response.status_code, (401, 403))

        self.client.force_authenticate(make_user("shopper@example.com"))
        response = self.client.post("/api/commissions/events/order-completed/", self.payload, format="json")
        self.assertEqual(response.status_code, 403)
        self.assertFalse(Attribution.objects.exists())

    def test_admin_can_replay_event(self):
        self.client.force_authenticate(make_user("ops@example.com", role="admin"))

        response = self.client.post("/api/commissions/events/order-completed/", self.payload, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data["created"])

    def test_completed_event_is_idempotent(self):
        first = self.client.post(
            "/api/commissions/events/order-completed/", self.payload, format="json", **EVENTS_TOKEN
        )
        second = self.client.post(
            "/api/commissions/events/order-completed/", self.payload, format="json", **EVENTS_TOKEN
        )

        self.assertEqual(first.status_code, 200)
        self.assertTrue(first.data["created"])
        self.assertEqual(first.data["attribution"]["commission_amount"], "50.00")
        self.assertEqual(first.data["attribution"]["order_number"], "100045")
        self.assertFalse(second.data["created"])
        self.assertEqual(first.data["attribution"]["id"], second.data["attribution"]["id"])
        self.assertEqual(Attribution.objects.count(), 1)

    def test_order_without_referrer_is_accepted(self):
        payload = {**self.payload, "referralCode": ""}

        response = self.client.post(
            "/api/commissions/events/order-completed/", payload, format="json", **EVENTS_TOKEN
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data, {"created": False, "attribution": None})

    def test_malformed_event_is_rejected(self):
        payload = {**self.payload, "baseAmount": "lots"}

        response = self.client.post(
            "/api/commissions/events/order-completed/", payload, format="json", **EVENTS_TOKEN
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("baseAmount", response.data)

    def test_reversed_event(self):
        self.client.post("/api/commissions/events/order-completed/", self.payload, format="json", **EVENTS_TOKEN)

        response = self.client.post(
            "/api/commissions/events/order-reversed/",
            {"orderId": "ORD-1", "reason": "customer return"},
            format="json",
            **EVENTS_TOKEN,
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["reversed"], 1)
        self.assertEqual(response.data["attributions"][0]["status"], Attribution.STATUS_REVERSED)

    def test_partial_reversed_event(self):
        self.client.post("/api/commissions/events/order-completed/", self.payload, format="json", **EVENTS_TOKEN)

        response = self.client.post(
            "/api/commissions/events/order-reversed/",
            {"orderId": "ORD-1", "reason": "one item returned", "amount": "250.00"},
            format="json",
            **EVENTS_TOKEN,
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["reversed"], 1)
        row = response.data["attributions"][0]
        self.assertEqual(row["status"], Attribution.STATUS_OPEN)
        self.assertEqual(row["base_amount"], "750.00")
        self.assertEqual(row["commission_amount"], "37.50")

    def test_partial_amount_must_be_positive(self):
        response = self.client.post(
            "/api/commissions/events/order-reversed/",
            {"orderId": "ORD-1", "amount": "0"},
            format="json",
            **EVENTS_TOKEN,
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("amount", response.data)


class AdminAttributionApiTest(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.admin = make_user("ops@example.com", role="admin")
        self.affiliate = make_affiliate(make_user("asha@example.com"))
        record_attribution(completion("ORD-1", "1000"))
        record_attribution(completion("ORD-2", "2500"))

    def test_customers_are_forbidden(self):
        self.client.force_authenticate(make_user("shopper@example.com"))

        self.assertEqual(self.client.get("/api/commissions/admin/attributions/").status_code, 403)
        self.assertEqual(self.client.get("/api/commissions/admin/payouts/").status_code, 403)

    def test_list_is_paginated_and_filterable(self):
        self.client.force_authenticate(self.admin)

        response = self.client.get("/api/commissions/admin/attributions/", {"status": "open", "limit": 1})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 2)
        self.assertEqual(response.data["pages"], 2)
        self.assertEqual(len(response.data["results"]), 1)

    def test_csv_export(self):
        self.client.force_authenticate(self.admin)

        response = self.client.get("/api/commissions/admin/attributions/export/")

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response["Content-Type"].startswith("text/csv"))
        lines = response.content.decode().strip().splitlines()
        self.assertEqual(lines[0].split(",")[:3], ["created_at", "month_key", "affiliate_id"])
        self.assertEqual(len(lines), 3)
        self.assertEqual(sorted(line.split(",")[4] for line in lines[1:]), ["ORD-1", "ORD-2"])


class AdminPayoutApiTest(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.admin = make_user("ops@example.com", role="admin")
        self.client.force_authenticate(self.admin)
        self.user = make_user("asha@example.com")
        self.affiliate = make_affiliate(self.user)
        record_attribution(completion("ORD-1", "1000"))
        self.payout, _ = submit_payout_request(self.affiliate, self.user, BANK_FORM, month_key="2025-03")

    def url(self, action):
        return f"/api/commissions/admin/payouts/{self.payout.pk}/{action}/"

    def test_list_masks_aadhaar(self):
        response = self.client.get("/api/commissions/admin/payouts/")

        row = response.data["results"][0]
        self.assertEqual(row["aadhaar_masked"], "XXXXXXXX9012")
        self.assertNotIn("aadhaar_number", row)

    def test_approve_and_mark_paid_in_one_step(self):
        response = self.client.post(self.url("approve"), {"utr": "UTR998877", "mark_paid": True}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], PayoutRequest.STATUS_PAID)
        self.assertEqual(response.data["utr"], "UTR998877")

    def test_settle_without_reference_is_rejected(self):
        self.client.post(self.url("approve"), {}, format="json")

        response = self.client.post(self.url("settle"), {}, format="json")

        self.assertEqual(response.status_code, 400)
        self.payout.refresh_from_db()
        self.assertEqual(self.payout.status, PayoutRequest.STATUS_APPROVED)

    def test_transition_out_of_paid_conflicts(self):
        settle_payout(approve_payout(self.payout, utr="UTR1"))

        response = self.client.post(self.url("reject"), {"reason": "too late"}, format="json")

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["status"], PayoutRequest.STATUS_PAID)

    def test_reject_requires_reason(self):
        response = self.client.post(self.url("reject"), {}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertIn("reason", response.data)

    def test_unknown_payout_is_404(self):
        response = self.client.post(
            "/api/commissions/admin/payouts/00000000-0000-0000-0000-000000000000/approve/", {}, format="json"
        )

        self.assertEqual(response.status_code, 404)

    def test_amount_is_serialized_as_string(self):
        response = self.client.get(f"/api/commissions/admin/payouts/{self.payout.pk}/")

        self.assertEqual(response.data["amount"], "50.00")
        self.assertEqual(Decimal(response.data["amount"]), self.payout.amount)
