#!/usr/bin/env python3
"""Minimal webhook receiver that checks HookRelay signatures.

Run it next to the relay:

    uvicorn examples.receiver:app --port 4000

and register ``http://localhost:4000/hooks/jobs`` with the shared secret
below (see examples/api_client.py).
"""

from fastapi import FastAPI, HTTPException, Request

from hookrelay.webhooks import verify_request

SECRET = "demo-secret"

app = FastAPI(title="HookRelay demo receiver")


@app.post("/hooks/jobs")
async def receive(request: Request) -> dict[str, str]:
    body = await request.body()
    if not verify_request(body, request.headers, SECRET):
        raise HTTPException(status_code=401, detail="Invalid signature")

    print(
        f"{request.headers['x-hookrelay-event-type']} "
        f"{request.headers['x-hookrelay-event-id']} "
        f"(attempt {request.headers['x-hookrelay-attempt']}): {body.decode()}"
    )
    return {"status": "received"}
