#!/usr/bin/env python3
"""
Seed script — creates a realistic dataset for trying out Link-Up.

Creates:
  • 10 users with profiles, contact details and interests
  • 2 upcoming meetups per user, spread over a handful of places
  • Link-up requests on other people's meetups (about half accepted,
    some declined, the rest left pending)
  • Ratings between people whose link-up was accepted

Tokens are minted locally with the API's JWT secret, so run it against a
dev stack only:
  python scripts/seed_data.py --api-url http://localhost:8000 --jwt-secret dev-secret-change-me

All IDs are printed so you can use them in curl commands.
"""
import argparse
import json
import random
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt


BASE_USERS = [
    ("alice", "Alice Chen", ["Music", "Food", "Art"]),
    ("bob", "Bob Martinez", ["Sports", "Gaming"]),
    ("carol", "Carol Singh", ["Music", "Movies"]),
    ("dave", "Dave Kim", ["Food", "Sports", "Travel"]),
    ("eve", "Eve Johnson", ["Gaming", "Movies", "Tech"]),
    ("frank", "Frank Williams", ["Sports", "Music"]),
    ("grace", "Grace Li", ["Art", "Books"]),
    ("henry", "Henry Brown", ["Food", "Music", "Movies"]),
    ("iris", "Iris Davis", ["Tech", "Gaming"]),
    ("jack", "Jack Wilson", ["Travel", "Food"]),
]

PLACES = [
    "Blue Bottle Cafe",
    "Central Park",
    "Brooklyn Bowl",
    "Chelsea Market",
    "Film Forum",
]

DESCRIPTIONS = [
    "Grabbing a coffee, happy to chat about anything.",
    "Pickup game, all skill levels welcome.",
    "Trying the new ramen place, come hungry.",
    "Watching the late show, spare seat next to me.",
    "Sketching by the fountain, bring a notebook.",
    None,
]


@dataclass
class ApiClient:
    base_url: str
    jwt_secret: str

    def token(self, user_id: str, name: str) -> str:
        return jwt.encode({"sub": user_id, "name": name}, self.jwt_secret, algorithm="HS256")

    def request(self, method: str, path: str, as_user: Optional[tuple] = None, data: Optional[dict] = None) -> dict:
        url = f"{self.base_url}{path}"
        headers = {"Content-Type": "application/json"}
        if as_user:
            headers["Authorization"] = f"Bearer {self.token(*as_user)}"
        body = json.dumps(data).encode() if data is not None else None
        req = urllib.request.Request(url, data=body, headers=headers, method=method)
        try:
            with urllib.request.urlopen(req, timeout=10) as resp:
                raw = resp.read()
                return json.loads(raw) if raw else {}
        except urllib.error.HTTPError as e:
            print(f"  HTTP {e.code} on {method} {path}: {e.read().decode()}")
            return {}


def wait_for_api(client: ApiClient, retries: int = 15) -> None:
    print(f"Waiting for API at {client.base_url} ...")
    for i in range(retries):
        try:
            result = client.request("GET", "/health")
            if result.get("status") == "ok":
                print("  API is ready!\n")
                return
        except urllib.error.URLError:
            pass
        time.sleep(3)
    raise RuntimeError(f"API not reachable at {client.base_url} after {retries} retries")


def main(api_url: str, jwt_secret: str) -> None:
    client = ApiClient(api_url, jwt_secret)
    wait_for_api(client)
    users = {user_id: (user_id, name) for user_id, name, _ in BASE_USERS}

    # ── Create profiles ──────────────────────────────────────────────────
    print("Creating profiles...")
    for user_id, name, interests in BASE_USERS:
        result = client.request(
            "PUT",
            "/profiles/me",
            users[user_id],
            {
                "display_name": name,
                "contact_channel": random.choice(["phone", "instagram"]),
                "contact_value": f"@{user_id}_links",
                "interest_tags": interests,
                "age": random.randint(21, 45),
                "bio": f"Hi, I'm {name.split()[0]}!",
            },
        )
        print(f"  {'✓' if result else '✗'} {user_id}")

    # ── Create meetups ───────────────────────────────────────────────────
    print("\nCreating meetups...")
    events: list[tuple[str, str]] = []  # (event_id, owner)
    now = datetime.now(timezone.utc)
    for user_id, _, _ in BASE_USERS:
        for _ in range(2):
            meetup_time = now + timedelta(hours=random.randint(2, 72))
            result = client.request(
                "POST",
                "/events/",
                users[user_id],
                {
                    "place_name": random.choice(PLACES),
                    "meetup_time": meetup_time.isoformat(),
                    "max_participants": random.choice([1, 2, 2, 3, -1]),
                    "description": random.choice(DESCRIPTIONS),
                },
            )
            if result.get("id"):
                events.append((result["id"], user_id))
    print(f"  ✓ {len(events)} meetups created")

    # ── Link-up requests and decisions ───────────────────────────────────
    print("\nSending link-up requests...")
    accepted: list[tuple[str, str, str]] = []  # (event_id, owner, requester)
    requests = 0
    for event_id, owner in events:
        others = [u for u in users if u != owner]
        for requester in random.sample(others, k=random.randint(0, 3)):
            result = client.request("POST", f"/events/{event_id}/linkup", users[requester])
            request_id = result.get("request_id")
            if not request_id or result.get("status") != "pending":
                continue
            requests += 1
            roll = random.random()
            if roll < 0.5:
                decision = "accepted"
            elif roll < 0.7:
                decision = "declined"
            else:
                continue
            client.request(
                "POST", f"/linkups/{request_id}/decision", users[owner], {"decision": decision}
            )
            if decision == "accepted":
                accepted.append((event_id, owner, requester))
    print(f"  ✓ {requests} requests, {len(accepted)} accepted")

    # ── Ratings ──────────────────────────────────────────────────────────
    print("\nAdding ratings...")
    ratings = 0
    for event_id, owner, requester in accepted:
        for rater, rated in ((requester, owner), (owner, requester)):
            if random.random() < 0.6:
                result = client.request(
                    "POST",
                    "/ratings/",
                    users[rater],
                    {
                        "event_post_id": event_id,
                        "to_user_id": rated,
                        "stars": random.randint(3, 5),
                        "comment": random.choice(["Great company!", "Fun afternoon", ""]),
                        "is_anonymous": random.random() < 0.3,
                    },
                )
                ratings += 1 if result else 0
    print(f"  ✓ {ratings} ratings added")

    # ── Print summary ─────────────────────────────────────────────────────
    print("\n" + "=" * 60)
    print("Seed complete! Here are some commands to try:\n")
    token = client.token(*users["alice"])
    print("# Live-ish feed for a place:")
    print(f"  curl -s '{api_url}/feed/location?location={PLACES[0].replace(' ', '%20')}' | python3 -m json.tool\n")
    print("# Recommended meetups for alice:")
    print(f"  curl -s -H 'Authorization: Bearer {token}' '{api_url}/feed/recommended' | python3 -m json.tool\n")
    print("# Alice's incoming requests and notifications:")
    print(f"  curl -s -H 'Authorization: Bearer {token}' '{api_url}/linkups/incoming' | python3 -m json.tool")
    print(f"  curl -s -H 'Authorization: Bearer {token}' '{api_url}/notifications/' | python3 -m json.tool\n")
    print("# Check Jaeger traces: http://localhost:16686")
    print("# Check Prometheus: http://localhost:9090")
    print("=" * 60)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the Link-Up system")
    parser.add_argument("--api-url", default="http://localhost:8000", help="API base URL")
    parser.add_argument("--jwt-secret", default="dev-secret-change-me", help="API JWT secret")
    args = parser.parse_args()
    main(args.api_url, args.jwt_secret)
