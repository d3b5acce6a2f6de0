#!/usr/bin/env python3
"""
Gatepass flow client (async)

Walks the whole ticket lifecycle against a running server that uses the
mock gateway:
  1) POST /api/checkout                 (tier, quantity) -> gateway order
  2) POST /mockpay/{order_id}/complete  -> signed checkout callback
  3) POST /api/payment/verify           -> ticket + credential
  4) POST /api/admin/scan  check_in     -> admitted
  5) POST /api/admin/scan  check_in     -> replay must be ALREADY_CHECKED_IN

It records timings per ticket and prints an aggregate report plus the
server's gate stats.

Usage:
  gatepass-flow --base http://localhost:8000 --session-secret dev-secret \
                --total 50 --concurrency 10

Notes:
- The server must run with GATEWAY=mock.
- The user tokens are minted locally with the shared session secret, the
  way the passcode login service would.
"""

import asyncio
import argparse
import random
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import httpx

from .auth import TokenService
from .helpers import new_id


@dataclass
class Result:
    ok: bool
    tier: str
    outcome: str  # ADMITTED/REPLAY_NOT_REJECTED/ERROR
    t_checkout: float = 0.0
    t_verify: float = 0.0
    t_scan: float = 0.0
    err: Optional[str] = None


@dataclass
class Stats:
    results: List[Result] = field(default_factory=list)

    def add(self, r: Result):
        self.results.append(r)

    def summary(self) -> Dict[str, float]:
        done = [r for r in self.results if r.ok]
        lat = [r.t_checkout + r.t_verify + r.t_scan for r in done]

        def pct(p):
            if not lat:
                return 0.0
            x = sorted(lat)
            k = int(max(0, min(len(x)-1, round(p/100*(len(x)-1)))))
            return x[k]
        return {
            "total": len(self.results),
            "ok": len(done),
            "admitted": sum(
                1 for r in self.results if r.outcome == "ADMITTED"
            ),
            "replay_accepted": sum(
                1 for r in self.results
                if r.outcome == "REPLAY_NOT_REJECTED"
            ),
            "error": sum(1 for r in self.results if r.outcome == "ERROR"),
            "p50_s": pct(50),
            "p90_s": pct(90),
            "p99_s": pct(99),
            "avg_s": (sum(lat)/len(lat)) if lat else 0.0,
        }

    def print(self, elapsed_s: float):
        s = self.summary()
        print("\n=== Flow Summary ===")
        print(
            f"Total: {int(s['total'])}   OK: {int(s['ok'])}   "
            f"ADMITTED: {int(s['admitted'])}   "
            f"REPLAY ACCEPTED: {int(s['replay_accepted'])}   "
            f"ERROR: {int(s['error'])}"
        )
        print(
            f"Latency (checkout -> verify -> scan): "
            f"avg {s['avg_s']:.3f}s   p50 {s['p50_s']:.3f}s   "
            f"p90 {s['p90_s']:.3f}s   p99 {s['p99_s']:.3f}s"
        )
        print(
            f"Wall time: {elapsed_s:.3f}s   "
            f"Throughput: {s['total']/elapsed_s:.1f} tickets/s"
        )
        for r in self.results:
            if r.err:
                print(f"  ! {r.tier}: {r.err}")


def _bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def one_ticket(
    client: httpx.AsyncClient,
    base: str,
    user_token: str,
    admin_token: str,
    tier: str,
    quantity: int,
) -> Result:
    r = Result(ok=False, tier=tier, outcome="ERROR")
    user = _bearer(user_token)

    # 1) checkout
    t0 = time.perf_counter()
    try:
        resp = await client.post(
            f"{base}/api/checkout",
            json={"tier": tier, "quantity": quantity},
            headers=user,
        )
        resp.raise_for_status()
        order_id = resp.json()["gateway_order_id"]
    except Exception as e:
        r.err = f"checkout: {e}"
        return r
    r.t_checkout = time.perf_counter() - t0

    # 2) + 3) hosted checkout completes, client relays the callback
    t1 = time.perf_counter()
    try:
        cb = await client.post(
            f"{base}/mockpay/{order_id}/complete", headers=user
        )
        cb.raise_for_status()
        resp = await client.post(
            f"{base}/api/payment/verify", json=cb.json(), headers=user
        )
        resp.raise_for_status()
        payload = resp.json()["credential"]
    except Exception as e:
        r.err = f"verify: {e}"
        return r
    r.t_verify = time.perf_counter() - t1

    # 4) + 5) gate scan, then replay
    t2 = time.perf_counter()
    try:
        scan = await client.post(
            f"{base}/api/admin/scan",
            json={"payload": payload, "action": "check_in"},
            headers=_bearer(admin_token),
        )
        scan.raise_for_status()
        replay = await client.post(
            f"{base}/api/admin/scan",
            json={"payload": payload, "action": "check_in"},
            headers=_bearer(admin_token),
        )
    except Exception as e:
        r.err = f"scan: {e}"
        return r
    r.t_scan = time.perf_counter() - t2

    r.ok = True
    code = ""
    if replay.status_code == 409:
        code = replay.json().get("error", {}).get("code", "")
    if code == "ALREADY_CHECKED_IN":
        r.outcome = "ADMITTED"
    else:
        r.outcome = "REPLAY_NOT_REJECTED"
        r.err = f"replay answered HTTP {replay.status_code}"
    return r


async def run_flow(
    base: str,
    session_secret: str,
    admin_user: str,
    admin_password: str,
    total: int,
    concurrency: int,
    max_quantity: int,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Stats:
    sem = asyncio.Semaphore(concurrency)
    stats = Stats()
    tokens = TokenService(session_secret, admins={})

    limits = httpx.Limits(
        max_keepalive_connections=concurrency, max_connections=concurrency
    )
    async with httpx.AsyncClient(
        limits=limits, timeout=30.0, transport=transport,
        headers={"User-Agent": "GatepassFlow/1.0"},
    ) as client:
        login = await client.post(
            f"{base}/api/admin/login",
            json={"username": admin_user, "password": admin_password},
        )
        login.raise_for_status()
        admin_token = login.json()["token"]

        tiers = await client.get(f"{base}/api/tiers")
        tiers.raise_for_status()
        tier_names = [t["tier"] for t in tiers.json()["tiers"]]

        async def worker(n: int):
            async with sem:
                user_id = f"flow-{new_id()[:12]}"
                token = tokens.issue_user_token(
                    user_id, f"{user_id}@example.com"
                )
                res = await one_ticket(
                    client, base, token, admin_token,
                    random.choice(tier_names),
                    random.randint(1, max_quantity),
                )
                stats.add(res)

        tasks = [asyncio.create_task(worker(i)) for i in range(total)]
        await asyncio.gather(*tasks)

        gate = await client.get(
            f"{base}/api/admin/stats", headers=_bearer(admin_token)
        )
        if gate.status_code == 200:
            s = gate.json()["stats"]
            print(
                f"Gate: total {s['total_tickets']}   "
                f"checked in {s['checked_in_tickets']}   "
                f"pending {s['pending_tickets']}   "
                f"by tier {s['counts_by_tier']}"
            )

    return stats


def main():
    ap = argparse.ArgumentParser(description="Gatepass flow client")
    ap.add_argument("--base", default="http://localhost:8000",
                    help="Base URL of the app")
    ap.add_argument("--session-secret", default="dev-secret-change-me",
                    help="Shared SESSION_SECRET used to mint user tokens")
    ap.add_argument("--admin-user", default="admin")
    ap.add_argument("--admin-password", default="supasecret")
    ap.add_argument("--total", type=int, default=20,
                    help="Total tickets to buy and scan")
    ap.add_argument("--concurrency", type=int, default=5,
                    help="Concurrent workers")
    ap.add_argument("--max-quantity", type=int, default=4,
                    help="Upper bound for the random quantity per order")
    args = ap.parse_args()

    t_start = time.perf_counter()
    stats = asyncio.run(run_flow(
        base=args.base.rstrip("/"),
        session_secret=args.session_secret,
        admin_user=args.admin_user,
        admin_password=args.admin_password,
        total=args.total,
        concurrency=args.concurrency,
        max_quantity=args.max_quantity,
    ))
    elapsed = time.perf_counter() - t_start
    stats.print(elapsed)


if __name__ == "__main__":
    main()
