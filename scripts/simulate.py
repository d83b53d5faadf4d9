"""
Rush Hour Simulation Script

Fires concurrent add-and-notify requests at a running server, then reads
the queue back and checks that every ticket of the series was issued
exactly once.
Run from project root: python scripts/simulate.py

Author: Khalil Bannouri
Version: 3.0.0
"""

import asyncio
import sys
import random
import re
import time
import argparse
from collections import Counter
from datetime import datetime
from typing import Any

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50

# Customers and menu for generated orders
FIRST_NAMES = ["Ana", "Bilal", "Chloe", "Dario", "Elif", "Farid", "Greta", "Hugo", "Ines", "Jonas"]
MENU_ITEMS = [
    {"name": "Cheeseburger", "price": 9.50},
    {"name": "Hot Dog", "price": 6.00},
    {"name": "Fries", "price": 3.50},
    {"name": "Chicken Wrap", "price": 8.75},
    {"name": "Milkshake", "price": 4.99},
    {"name": "Coke", "price": 2.50},
]

TICKET_PATTERN = re.compile(r"^([A-Z]+)(\d+)$")


def generate_random_items() -> list[dict]:
    """One to three menu lines with random quantities."""
    items = []
    for _ in range(random.randint(1, 4)):
        item = random.choice(MENU_ITEMS).copy()
        item["quantity"] = random.randint(1, 3)
        items.append(item)
    return items


def generate_order_payload() -> dict[str, Any]:
    """Generate payload for /api/queue/add-and-notify (server assigns id and ticket)."""
    items = generate_random_items()
    payload: dict[str, Any] = {
        "order": {
            "items": items,
            "total": round(sum(i["price"] * i["quantity"] for i in items), 2),
            "customerName": random.choice(FIRST_NAMES),
            "createdAt": datetime.now().astimezone().isoformat(),
        }
    }
    if random.random() < 0.5:
        payload["customerPhone"] = f"+1555{random.randint(1000000, 9999999)}"
    return payload


async def send_order(client: httpx.AsyncClient, order_num: int) -> dict[str, Any]:
    """Send one walk-in order."""
    start_time = time.time()

    try:
        response = await client.post(
            f"{API_BASE_URL}/api/queue/add-and-notify",
            json=generate_order_payload(),
            timeout=30.0
        )
        elapsed = round(time.time() - start_time, 3)

        if response.status_code == 201:
            data = response.json()
            return {
                "order_num": order_num,
                "success": True,
                "order_id": data.get("orderId"),
                "ticket": data.get("ticket"),
                "message": data.get("message"),
                "time": elapsed,
            }
        return {
            "order_num": order_num,
            "success": False,
            "error": response.text[:100],
            "time": elapsed,
        }
    except httpx.HTTPError as e:
        elapsed = round(time.time() - start_time, 3)
        return {
            "order_num": order_num,
            "success": False,
            "error": str(e)[:100],
            "time": elapsed,
        }


def check_tickets(tickets: list[str]) -> dict[str, Any]:
    """Duplicate and missing numbers per prefix."""
    by_prefix: dict[str, list[int]] = {}
    for ticket in tickets:
        match = TICKET_PATTERN.match(ticket or "")
        if match:
            by_prefix.setdefault(match.group(1), []).append(int(match.group(2)))

    report = {}
    for prefix, numbers in by_prefix.items():
        counts = Counter(numbers)
        report[prefix] = {
            "issued": len(numbers),
            "duplicates": sorted(n for n, c in counts.items() if c > 1),
            "missing": sorted(set(range(min(numbers), max(numbers) + 1)) - set(numbers)),
        }
    return report


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(num_orders: int = TOTAL_ORDERS) -> dict[str, Any]:
    """
    Run the rush hour simulation.

    Args:
        num_orders: Number of orders to fire concurrently
    """
    print("=" * 70)
    print("🔥 RUSH HOUR SIMULATION - CONCURRENT TICKETING TEST")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient() as client:
        print("\n🚀 Firing orders...\n")
        results = await asyncio.gather(*(send_order(client, i + 1) for i in range(num_orders)))

        queue_response = await client.get(f"{API_BASE_URL}/api/queue", timeout=30.0)
        queue = queue_response.json() if queue_response.status_code == 200 else {"orders": []}

    total_time = round(time.time() - start_time, 2)

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]
    notification_failures = [r for r in successful if "notification failed" in (r.get("message") or "")]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)

    print(f"\n✅ Queued Orders: {len(successful)}/{num_orders}")
    print(f"❌ Failed Orders: {len(failed)}/{num_orders}")
    print(f"📨 Orders with a failed notification: {len(notification_failures)}")
    print(f"⏱️  Total Time: {total_time}s")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        print(f"\n📈 Performance Metrics:")
        print(f"   Average Response: {avg_time}s")
        print(f"   Fastest: {min(r['time'] for r in successful)}s")
        print(f"   Slowest: {max(r['time'] for r in successful)}s")

    if failed:
        print(f"\n⚠️  Failed Order Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']}: {f.get('error', 'Unknown error')}")

    print("\n" + "=" * 70)
    print("🎟️ TICKET CHECK")
    print("=" * 70)

    issued = {r["ticket"] for r in successful}
    stored = {o.get("id"): o.get("ticket") for o in queue.get("orders", [])}
    lost = [r["order_id"] for r in successful if r["order_id"] not in stored]
    report = check_tickets([stored[r["order_id"]] for r in successful if r["order_id"] in stored])

    print(f"   Distinct tickets in responses: {len(issued)}")
    print(f"   Orders missing from the queue: {len(lost)}")
    for prefix, info in report.items():
        status = "✅" if not info["duplicates"] and not info["missing"] else "⚠️"
        print(f"   {status} Series {prefix}: {info['issued']} issued, "
              f"duplicates {info['duplicates'] or 'none'}, gaps {info['missing'] or 'none'}")
    print("=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "tickets": report,
        "lost": lost,
    }


async def check_server() -> bool:
    """Pre-flight health check."""
    async with httpx.AsyncClient() as client:
        print("\n🩺 Health Check...")
        try:
            response = await client.get(f"{API_BASE_URL}/health")
        except httpx.HTTPError as e:
            print(f"   ❌ Server unreachable: {e}")
            return False
        data = response.json()
        print(f"   Status: {data.get('status')}")
        print(f"   Queue store: {data.get('queueStore')}")
        print(f"   Notifications: {data.get('notificationService')}")
        return data.get("queueStore") == "healthy"


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Rush Hour Simulation Script")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--url", default=API_BASE_URL, help="Server base URL")
    args = parser.parse_args()
    API_BASE_URL = args.url.rstrip("/")

    if not asyncio.run(check_server()):
        print("\n❌ Pre-flight check failed. Start the API first.")
        sys.exit(1)

    asyncio.run(run_simulation(num_orders=args.orders))
