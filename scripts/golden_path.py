#!/usr/bin/env python3
"""Golden path demo for WatchGate (assign, confirm, read stats)."""

from __future__ import annotations

import json
import os
import sys
import uuid
from typing import Any
from urllib.error import HTTPError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen


def _env(name: str, default: str | None = None) -> str | None:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value


class HttpClient:
    def __init__(self, base_url: str) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers: dict[str, str] = {"Content-Type": "application/json"}

    def request_json(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        query: dict[str, Any] | None = None,
        timeout: float = 10.0,
    ) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        if query:
            query = {k: v for k, v in query.items() if v is not None}
            if query:
                url = f"{url}?{urlencode(query)}"

        data = None
        if payload is not None:
            data = json.dumps(payload, default=str).encode("utf-8")

        req = Request(url, data=data, method=method)
        for key, value in self.headers.items():
            req.add_header(key, value)

        try:
            with urlopen(req, timeout=timeout) as response:
                raw = response.read()
        except HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace")
            raise RuntimeError(f"{method} {url} failed: {exc.code} {exc.reason}: {detail}") from None

        if not raw:
            return {}
        return json.loads(raw.decode("utf-8"))


def main() -> int:
    watchgate_url = _env("WATCHGATE_URL", "http://localhost:8080")
    order_ref = _env("WATCHGATE_ORDER_REF", f"ORD-DEMO-{uuid.uuid4().hex[:8].upper()}")

    client = HttpClient(watchgate_url)

    print("Checking health...")
    health = client.request_json("GET", "/v1/health")
    if health.get("status") != "healthy":
        raise RuntimeError(f"Unexpected health response: {health}")

    print(f"Assigning order {order_ref}...")
    lease = client.request_json("POST", "/v1/assignments", payload={"order_ref": order_ref})
    watchman_id = lease.get("watchman_id")
    watchman_name = lease.get("watchman_name")
    if not watchman_id or not watchman_name:
        raise RuntimeError(f"Missing watchman in lease: {lease}")
    print(f"Lease {lease.get('lease_id')} held by watchman {watchman_id} ({watchman_name})")

    pending = client.request_json("GET", f"/v1/watchmen/{watchman_id}/pending").get("leases", [])
    if order_ref not in {p.get("order_ref") for p in pending}:
        raise RuntimeError(f"Order {order_ref} missing from pending list: {pending}")

    print("Confirming order...")
    confirm = client.request_json(
        "POST",
        f"/v1/assignments/{quote(order_ref, safe='')}/confirm",
        payload={"watchman_id": watchman_id, "watchman_name": watchman_name},
    )
    print(f"Confirmed in {confirm.get('completion_seconds')}s")

    stats = client.request_json("GET", f"/v1/watchmen/{watchman_id}/stats").get("stats", {})
    if stats.get("total_confirmed", 0) < 1:
        raise RuntimeError(f"Confirmation not counted: {stats}")

    chain = client.request_json(
        "GET", f"/v1/orders/{quote(order_ref, safe='')}/leases"
    ).get("leases", [])
    if not chain or chain[-1].get("status") != "confirmed":
        raise RuntimeError(f"Unexpected lease chain: {chain}")

    print(
        f"Golden path complete: order confirmed, watchman {watchman_id} "
        f"efficiency {stats.get('efficiency')}%."
    )
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        raise
