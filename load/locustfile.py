"""
Locust load script for the provider webhook endpoints.

Replays realistic deliveries against a seeded campaign:
- Pay2m / Fluxsis / Paggue status changes for random quota numbers
- Stripe payment_intent events for ticket purchases
- Non-payment pings that must be acknowledged without side effects
- Occasional malformed references (expect 400)

Configure with env vars or Locust UI:
- HOST: pass via `--host http://localhost:8000`
- RIFAQUI_CAMPAIGN_ID: campaign to target (must exist and have tickets)
- RIFAQUI_TOTAL_TICKETS: highest quota number to draw from (default 1000)
- RIFAQUI_API_PREFIX: API prefix (default /api/v1)

Run:
  locust -f load/locustfile.py --host http://localhost:8000
"""

from __future__ import annotations

import logging
import os
import random
import uuid
from typing import List

from locust import HttpUser, between, events, task

CAMPAIGN_ID = os.getenv("RIFAQUI_CAMPAIGN_ID", "").strip()
TOTAL_TICKETS = int(os.getenv("RIFAQUI_TOTAL_TICKETS", "1000"))
API_PREFIX = os.getenv("RIFAQUI_API_PREFIX", "/api/v1").rstrip("/")


@events.test_start.add_listener
def _check_config(environment, **kwargs):  # noqa: ANN001
    if not CAMPAIGN_ID:
        logging.warning("RIFAQUI_CAMPAIGN_ID is not set; deliveries will target a missing campaign")


def _numbers(k: int = 3) -> List[int]:
    return random.sample(range(1, TOTAL_TICKETS + 1), k=min(k, TOTAL_TICKETS))


def _reference(numbers: List[int]) -> str:
    return f"campaign_{CAMPAIGN_ID or 'missing'}_tickets_{','.join(str(n) for n in numbers)}"


class WebhookSender(HttpUser):
    wait_time = between(0.2, 1.5)

    def _post(self, provider: str, body: dict, name: str, expect=(200,)) -> None:
        with self.client.post(
            f"{API_PREFIX}/webhooks/{provider}",
            json=body,
            name=name,
            catch_response=True,
        ) as resp:
            if resp.status_code in expect:
                resp.success()
            else:
                resp.failure(f"unexpected {resp.status_code}: {resp.text[:200]}")

    @task(4)
    def pay2m_completed(self) -> None:
        self._post(
            "pay2m",
            {
                "event_type": "transaction.completed",
                "transaction": {
                    "id": str(uuid.uuid4()),
                    "status": random.choice(["paid", "approved", "pending", "failed"]),
                    "amount": 10.0,
                    "reference": _reference(_numbers()),
                },
            },
            "pay2m status",
        )

    @task(3)
    def fluxsis_status(self) -> None:
        self._post(
            "fluxsis",
            {
                "event": "payment.status_changed",
                "data": {
                    "id": str(uuid.uuid4()),
                    "status": random.choice(["paid", "cancelled", "pending"]),
                    "amount": 5.0,
                    "external_reference": _reference(_numbers(2)),
                },
            },
            "fluxsis status",
        )

    @task(2)
    def paggue_status(self) -> None:
        self._post(
            "paggue",
            {
                "event": "transaction.status_updated",
                "data": {
                    "transaction_id": str(uuid.uuid4()),
                    "status": random.choice(["paid", "expired"]),
                    "amount": 5.0,
                    "reference_id": _reference(_numbers(1)),
                },
            },
            "paggue status",
        )

    @task(2)
    def stripe_intent(self) -> None:
        self._post(
            "stripe",
            {
                "type": random.choice(
                    ["payment_intent.succeeded", "payment_intent.payment_failed"]
                ),
                "data": {
                    "object": {
                        "id": f"pi_{uuid.uuid4().hex[:24]}",
                        "amount": 1000,
                        "currency": "brl",
                        "metadata": {"external_reference": _reference(_numbers(2))},
                    }
                },
            },
            "stripe payment_intent",
        )

    @task(1)
    def ping(self) -> None:
        self._post("pay2m", {"event_type": "ping"}, "pay2m ping")

    @task(1)
    def malformed(self) -> None:
        self._post(
            "fluxsis",
            {
                "event": "payment.status_changed",
                "data": {"id": "x", "status": "paid", "external_reference": "not-a-reference"},
            },
            "fluxsis malformed",
            expect=(400,),
        )
