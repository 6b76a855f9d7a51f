"""
Chaos Simulation Script

Simulates a busy service against a running API: many customers place
orders at once, then several staff devices race to move each order
through the workflow. Every order must end in exactly one terminal
status, with the losers of each race getting CONFLICT_ERROR or
INVALID_TRANSITION instead of a double write.

Run from project root: python scripts/simulate.py

Version: 1.0.0
"""

import argparse
import asyncio
import random
import sys
import time
from datetime import datetime
from typing import Any

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50
STAFF_DEVICES = 3

# Sample data for random orders
FIRST_NAMES = ["John", "Jane", "Mike", "Sarah", "Tom", "Emma", "David", "Lisa", "Chris", "Amy"]
LAST_NAMES = ["Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller", "Davis", "Wilson", "Taylor"]
MENU_ITEMS = [
    {"name": "Pho Tai", "price": 12.5},
    {"name": "Bun Cha", "price": 13.0},
    {"name": "Banh Mi", "price": 8.75},
    {"name": "Spring Rolls", "price": 6.5},
    {"name": "Iced Coffee", "price": 4.25},
]

# Happy path plus the branches staff can take
WORKFLOWS = [
    ["Cooking", "Ready", "Completed"],
    ["Cooking", "Ready", "Completed"],
    ["Cooking", "Ready", "Completed"],
    ["Declined"],
    ["Cooking", "Cancelled"],
]


def generate_order_payload(restaurant_id: str) -> dict[str, Any]:
    """Generate a random order for the simulated restaurant."""
    items = []
    for item in random.sample(MENU_ITEMS, random.randint(1, 3)):
        items.append({**item, "quantity": random.randint(1, 3)})

    return {
        "customerId": f"sim_customer_{random.randint(1000, 9999)}",
        "customerName": f"{random.choice(FIRST_NAMES)} {random.choice(LAST_NAMES)}",
        "restaurantId": restaurant_id,
        "restaurantName": "Simulation Kitchen",
        "items": items,
        "specialInstructions": random.choice([None, "No cilantro", "Extra spicy", "Ring doorbell"]),
    }


async def setup_restaurant(client: httpx.AsyncClient) -> str:
    """Create and publish a fresh restaurant for this run."""
    owner_id = f"sim_owner_{int(time.time())}"
    response = await client.post(f"{API_BASE_URL}/api/restaurants", json={
        "ownerId": owner_id,
        "name": "Simulation Kitchen",
        "categories": ["Vietnamese"],
        "phone": "+1 (555) 010-0000",
    })
    response.raise_for_status()
    restaurant_id = response.json()["data"]["restaurantId"]

    response = await client.post(
        f"{API_BASE_URL}/api/restaurants/{restaurant_id}/publish",
        json={"ownerId": owner_id},
    )
    response.raise_for_status()
    return restaurant_id


async def place_order(client: httpx.AsyncClient, restaurant_id: str, order_num: int) -> dict[str, Any]:
    """Place one order."""
    start_time = time.time()
    try:
        response = await client.post(
            f"{API_BASE_URL}/api/orders",
            json=generate_order_payload(restaurant_id),
            timeout=30.0,
        )
        body = response.json()
    except (httpx.HTTPError, ValueError) as e:
        return {"order_num": order_num, "success": False, "error": str(e)[:100], "time": time.time() - start_time}

    return {
        "order_num": order_num,
        "success": body.get("success", False),
        "order_id": (body.get("data") or {}).get("orderId"),
        "error": body.get("error"),
        "time": round(time.time() - start_time, 3),
    }


async def staff_device(
    client: httpx.AsyncClient,
    restaurant_id: str,
    order_id: str,
    workflow: list[str],
) -> dict[str, int]:
    """One staff device walking an order through ``workflow``."""
    tally = {"applied": 0, "conflicts": 0, "rejected": 0, "errors": 0}
    for status in workflow:
        await asyncio.sleep(random.uniform(0, 0.05))
        try:
            response = await client.patch(
                f"{API_BASE_URL}/api/orders/{order_id}/status",
                json={"status": status, "restaurantId": restaurant_id},
                timeout=30.0,
            )
            body = response.json()
        except (httpx.HTTPError, ValueError):
            tally["errors"] += 1
            continue

        if body.get("success"):
            tally["applied"] += 1
        elif body.get("errorCode") == "CONFLICT_ERROR":
            tally["conflicts"] += 1
        elif body.get("errorCode") == "INVALID_TRANSITION":
            tally["rejected"] += 1
        else:
            tally["errors"] += 1
    return tally


async def race_order(client: httpx.AsyncClient, restaurant_id: str, order_id: str) -> dict[str, Any]:
    """Race ``STAFF_DEVICES`` devices on one order and report its final status."""
    workflow = random.choice(WORKFLOWS)
    tallies = await asyncio.gather(*[
        staff_device(client, restaurant_id, order_id, workflow) for _ in range(STAFF_DEVICES)
    ])

    response = await client.get(f"{API_BASE_URL}/api/orders/{order_id}")
    final_status = (response.json().get("data") or {}).get("status")

    totals = {key: sum(t[key] for t in tallies) for key in tallies[0]}
    return {
        "order_id": order_id,
        "expected": workflow[-1],
        "final": final_status,
        # Each step must be applied exactly once across all devices
        "consistent": final_status == workflow[-1] and totals["applied"] == len(workflow),
        **totals,
    }


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(num_orders: int = TOTAL_ORDERS) -> dict[str, Any]:
    """
    Run the chaos simulation.

    Args:
        num_orders: Number of orders to simulate
    """
    print("=" * 70)
    print("CHAOS SIMULATION - CONCURRENT ORDER WORKFLOW")
    print("=" * 70)
    print(f"Total Orders: {num_orders}")
    print(f"Staff Devices per Order: {STAFF_DEVICES}")
    print(f"Target: {API_BASE_URL}")
    print(f"Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient() as client:
        restaurant_id = await setup_restaurant(client)
        print(f"\nRestaurant {restaurant_id} published")

        print("\nPlacing orders...")
        placed = await asyncio.gather(*[place_order(client, restaurant_id, i + 1) for i in range(num_orders)])
        created = [p for p in placed if p["success"] and p.get("order_id")]

        print("Racing staff devices...")
        races = await asyncio.gather(*[race_order(client, restaurant_id, p["order_id"]) for p in created])

    total_time = round(time.time() - start_time, 2)
    inconsistent = [r for r in races if not r["consistent"]]

    print("\n" + "=" * 70)
    print("SIMULATION RESULTS")
    print("=" * 70)
    print(f"\nOrders placed: {len(created)}/{num_orders}")
    print(f"Status writes applied: {sum(r['applied'] for r in races)}")
    print(f"Conflicts (lost races): {sum(r['conflicts'] for r in races)}")
    print(f"Rejected transitions: {sum(r['rejected'] for r in races)}")
    print(f"Other errors: {sum(r['errors'] for r in races)}")
    print(f"Total Time: {total_time}s")

    if created:
        avg_time = round(sum(p["time"] for p in created) / len(created), 3)
        print(f"\nAverage order response: {avg_time}s")

    if inconsistent:
        print(f"\nInconsistent orders (showing first 5 of {len(inconsistent)}):")
        for r in inconsistent[:5]:
            print(f"   {r['order_id']}: expected {r['expected']}, got {r['final']} ({r['applied']} writes)")
    else:
        print("\nEvery order reached its terminal status exactly once")

    print("=" * 70)

    return {
        "total": num_orders,
        "placed": len(created),
        "inconsistent": len(inconsistent),
        "total_time": total_time,
    }


async def check_health() -> bool:
    """Pre-flight check before the chaos run."""
    async with httpx.AsyncClient() as client:
        try:
            response = await client.get(f"{API_BASE_URL}/health")
        except httpx.HTTPError as e:
            print(f"Health check failed: {e}")
            return False
    if response.status_code != 200:
        print(f"Health check failed: {response.text}")
        return False
    data = response.json()
    print(f"Status: {data.get('status')} | Store: {data.get('document_store')}")
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Chaos Simulation Script")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--url", default=API_BASE_URL, help="API base URL")
    args = parser.parse_args()
    API_BASE_URL = args.url

    if not asyncio.run(check_health()):
        sys.exit(1)

    summary = asyncio.run(run_simulation(num_orders=args.orders))
    sys.exit(1 if summary["inconsistent"] else 0)
