"""
Concurrent Bidding Load Test

1. Mints tokens for a farmer and a pool of traders BEFORE the test starts
   (same SECRET_KEY as the server)
2. Opens one bidding session on LOAD_TEST_SUBJECT, or reuses the ongoing one
3. Every virtual user hammers that single session with rising bids, so most
   requests race on the same ledger

Run:
    locust -f load_test/locustfile.py --host http://localhost:8000
"""

import csv
import os
import random
import time
from datetime import datetime, timezone

import requests
from locust import HttpUser, between, events, task

from cropbid.core.jwt import create_access_token

SUBJECT_REF = os.getenv("LOAD_TEST_SUBJECT", "load-test-lot")
MINIMUM_BID = float(os.getenv("LOAD_TEST_MINIMUM_BID", "100"))
NUM_TRADERS = int(os.getenv("LOAD_TEST_TRADERS", "50"))

TRADER_TOKENS = []
SESSION_ID = None
TEST_START_TIME = None
BID_LOG_FILE = None


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    """
    Called ONCE before the test starts.
    Mint tokens and open (or find) the session under test.
    """
    global TRADER_TOKENS, SESSION_ID, TEST_START_TIME, BID_LOG_FILE

    TEST_START_TIME = time.time()

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_dir = f"results_{timestamp}"
    os.makedirs(log_dir, exist_ok=True)
    BID_LOG_FILE = os.path.join(log_dir, "bid_requests.csv")

    with open(BID_LOG_FILE, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(
            ["timestamp", "elapsed_seconds", "bid_price", "status_code", "code", "response_time_ms"]
        )

    base_url = environment.host
    farmer_token = create_access_token(
        "load-test-farmer", "Load Test Farmer", "farmer@load.test", role="farmer"
    )

    now = datetime.now(timezone.utc)
    harvest_period = f"{now.year}-{now.month:02d}"
    response = requests.post(
        f"{base_url}/api/sessions",
        json={
            "subject_ref": SUBJECT_REF,
            "minimum_bid": MINIMUM_BID,
            "harvest_period": harvest_period,
        },
        headers=_auth(farmer_token),
        timeout=10,
    )

    if response.status_code == 201:
        SESSION_ID = response.json()["session_id"]
    elif response.status_code == 409:
        existing = requests.get(f"{base_url}/api/subjects/{SUBJECT_REF}/session", timeout=10)
        existing.raise_for_status()
        SESSION_ID = existing.json()["id"]
    else:
        print(f"Failed to open session: {response.status_code} {response.text}")
        return

    TRADER_TOKENS = [
        create_access_token(f"trader-{i}", f"Trader {i}", f"trader{i}@load.test")
        for i in range(1, NUM_TRADERS + 1)
    ]

    print(f"Session under test: {SESSION_ID}")
    print(f"Trader tokens ready: {len(TRADER_TOKENS)}")
    print(f"Bid log file: {BID_LOG_FILE}")


@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    """Check the monotonicity of the ledger the run produced."""
    if not SESSION_ID:
        return

    response = requests.get(f"{environment.host}/api/sessions/{SESSION_ID}", timeout=10)
    if response.status_code != 200:
        print(f"Could not fetch session {SESSION_ID}: {response.status_code}")
        return

    amounts = [bid["amount_per_unit"] for bid in response.json()["session"]["bids"]]
    violations = sum(1 for a, b in zip(amounts, amounts[1:]) if b < a)
    print(f"Accepted bids: {len(amounts)}, ordering violations: {violations}")


class BiddingTrader(HttpUser):
    """
    95% bidding, 5% polling the session like the marketplace page does.
    Bid prices rise with elapsed time so a good share is accepted.
    """

    wait_time = between(0.1, 0.5)

    def on_start(self):
        """Pick a pre-minted token - no network requests here"""
        self.token = random.choice(TRADER_TOKENS) if TRADER_TOKENS else None

    @task(95)
    def submit_bid(self):
        if not self.token or not SESSION_ID or TEST_START_TIME is None:
            return

        elapsed_seconds = time.time() - TEST_START_TIME
        # Price increases by 0.5 per second plus some variance
        bid_price = round(MINIMUM_BID + elapsed_seconds * 0.5 + random.uniform(0, 20), 2)

        request_start = time.time()
        with self.client.post(
            f"/api/sessions/{SESSION_ID}/bids",
            headers=_auth(self.token),
            json={"amount_per_unit": bid_price},
            name="BID",
            catch_response=True,
        ) as response:
            code = None
            if response.status_code == 200:
                response.success()
            elif response.status_code == 422:
                # Outbid by a concurrent trader: expected under contention
                code = response.json().get("code")
                response.success()
            else:
                response.failure(f"Status code: {response.status_code}")

            if BID_LOG_FILE:
                with open(BID_LOG_FILE, "a", newline="") as f:
                    csv.writer(f).writerow(
                        [
                            datetime.now().isoformat(),
                            round(elapsed_seconds, 2),
                            bid_price,
                            response.status_code,
                            code,
                            round((time.time() - request_start) * 1000, 2),
                        ]
                    )

    @task(5)
    def poll_session(self):
        if not SESSION_ID:
            return
        self.client.get(f"/api/sessions/{SESSION_ID}", name="SESSION")
