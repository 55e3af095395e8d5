#!/usr/bin/env python3
"""REST API client demonstration.

Start the relay and the demo receiver in two terminals:

    uvicorn hookrelay.api:app --port 3000
    uvicorn examples.receiver:app --port 4000

Then run this script:

    python examples/api_client.py

The API provides:
    POST /api/webhooks                    - Register a subscription
    POST /api/events                      - Ingest an event
    GET  /api/events/{id}/delivery-logs   - Delivery attempts for an event
    GET  /api/dashboard/stats             - Counts
"""

import asyncio

import httpx

BASE_URL = "http://localhost:3000/api"
RECEIVER_URL = "http://localhost:4000/hooks/jobs"


async def main() -> None:
    """Run the API client demo."""
    async with httpx.AsyncClient(timeout=10.0) as client:
        try:
            resp = await client.post(
                f"{BASE_URL}/webhooks",
                json={
                    "event_type": "job_created",
                    "target_url": RECEIVER_URL,
                    "secret": "demo-secret",
                },
            )
        except httpx.ConnectError:
            print("Could not connect to HookRelay.")
            print("Start it with: uvicorn hookrelay.api:app --port 3000")
            return
        resp.raise_for_status()
        print(f"Registered webhook {resp.json()['id']} -> {RECEIVER_URL}")

        for external_id in ("evt-1", "evt-1", "evt-2"):
            resp = await client.post(
                f"{BASE_URL}/events",
                json={
                    "externalId": external_id,
                    "type": "job_created",
                    "payload": {"job_id": external_id},
                },
            )
            print(f"POST {external_id}: {resp.status_code} {resp.json()['message']}")

        await asyncio.sleep(1)

        events = (await client.get(f"{BASE_URL}/events")).json()
        for event in events:
            logs = (await client.get(f"{BASE_URL}/events/{event['id']}/delivery-logs")).json()
            for log in logs:
                print(
                    f"  {event['external_id']}: {log['status']} "
                    f"(HTTP {log['response_code']}, attempt {log['attempt_count']})"
                )

        stats = (await client.get(f"{BASE_URL}/dashboard/stats")).json()
        print(f"Stats: {stats}")


if __name__ == "__main__":
    asyncio.run(main())
