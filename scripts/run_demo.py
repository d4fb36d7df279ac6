#!/usr/bin/env python3
"""
run_demo.py - End-to-end demo for the shiptrack service
- Signs up (or logs in) a customer
- Creates a shipment draft and shows the quoted cost
- Pays for the draft (mock provider, takes a few seconds)
- Walks the shipment through pickup, transit and delivery (X-Internal-Key)
- Tracks it by number and prints the event history
"""

import requests
import json
import os
from typing import Any, Dict, List, Optional


class DemoRunner:
    def __init__(self):
        self.base_url = os.getenv("SHIPTRACK_URL", "http://localhost:8000")
        self.auth_url = f"{self.base_url}/auth"
        self.shipping_url = f"{self.base_url}/shipping/v1"

        self.cust_email = "cust@example.com"
        self.cust_pass = "P@ssw0rd!"

        # Internal key (carrier status updates)
        self.internal_key = os.getenv("SVC_INTERNAL_KEY", "devkey")

        self.access_token: Optional[str] = None

    # ---------- helpers ----------
    def show_step(self, title: str):
        print(f"\n=== {title} ===")

    def mask_token(self, token: str) -> str:
        if not token:
            return "<none>"
        return token if len(token) <= 12 else f"{token[:8]}...{token[-6:]}"

    def call_api(
        self,
        method: str,
        url: str,
        headers: Optional[Dict] = None,
        data: Optional[Any] = None,
        expected_status: List[int] = [200, 201, 202, 204],
        quiet: bool = False,
        timeout: int = 30,
    ):
        if not quiet:
            print(f"\n-> {method} {url}")
            if data is not None:
                print(f"   Body: {json.dumps(data, indent=2)}")

        try:
            resp = requests.request(
                method=method,
                url=url,
                headers=headers,
                json=data if isinstance(data, (dict, list)) else None,
                timeout=timeout,
            )
            if not quiet:
                status_color = "\033[92m" if resp.status_code in expected_status else "\033[93m"
                print(f"   Status: {status_color}{resp.status_code}\033[0m")

            try:
                js = resp.json()
                if not quiet:
                    print(json.dumps(js, indent=2))
                return {"status": resp.status_code, "data": js, "raw": resp.text}
            except json.JSONDecodeError:
                return {"status": resp.status_code, "data": None, "raw": resp.text}
        except requests.exceptions.RequestException as e:
            if not quiet:
                print(f"   Error: \033[91m{e}\033[0m")
            return {"status": None, "data": None, "raw": None, "error": str(e)}

    # ---------- flow ----------
    def run_demo(self):
        print("Starting ShipTrack Demo")
        print("=" * 50)

        self.show_step("Preflight: service health")
        health = self.call_api("GET", f"{self.base_url}/health", quiet=True)
        if health.get("status") != 200:
            print(f"\033[91mService not reachable at {self.base_url}\033[0m")
            return

        # 1) Customer signup, falling back to login
        self.show_step("Customer: signup")
        res = self.call_api(
            "POST",
            f"{self.auth_url}/signup",
            data={"email": self.cust_email, "password": self.cust_pass, "full_name": "Demo Customer", "phone": "555-0100"},
            expected_status=[201, 409],
        )
        if res.get("status") == 409:
            self.show_step("Customer: login")
            res = self.call_api("POST", f"{self.auth_url}/login", data={"email": self.cust_email, "password": self.cust_pass})
        self.access_token = (res.get("data") or {}).get("access_token")
        print(f"Access token: {self.mask_token(self.access_token)}")
        hdrs = {"Authorization": f"Bearer {self.access_token}"} if self.access_token else {}

        # 2) Draft + quote
        self.show_step("Customer: create shipment draft")
        draft = self.call_api(
            "POST",
            f"{self.shipping_url}/shipments/drafts",
            headers=hdrs,
            data={
                "sender_name": "Demo Customer",
                "sender_address": "1 Demo Street, Dublin",
                "sender_phone": "555-0100",
                "receiver_name": "Jane Receiver",
                "receiver_address": "9 Harbour Road, Cork",
                "receiver_phone": "555-0199",
                "package_weight": 2.5,
                "package_dimensions": "30x20x10",
                "service_type": "express",
            },
        )
        draft_id = (draft.get("data") or {}).get("id")
        print(f"Quoted cost: {(draft.get('data') or {}).get('cost')}")
        if not draft_id:
            print("Skipping payment - no draft")
            return

        # 3) Pay
        self.show_step("Payment: confirm draft")
        paid = self.call_api("POST", f"{self.shipping_url}/shipments/drafts/{draft_id}/pay", headers=hdrs)
        shipment = paid.get("data") or {}
        if paid.get("status") != 201:
            print("Payment failed - stopping")
            return
        shipment_id = shipment["id"]
        tracking_number = shipment["tracking_number"]

        # 4) Carrier status updates
        int_hdrs = {"X-Internal-Key": self.internal_key}
        for status in ("picked_up", "in_transit", "out_for_delivery", "delivered"):
            self.show_step(f"Carrier: {status}")
            self.call_api(
                "POST",
                f"{self.shipping_url}/shipments/{shipment_id}/status",
                headers=int_hdrs,
                data={"status": status},
                quiet=True,
            )

        # 5) Track
        self.show_step("Public: track by number")
        tr = self.call_api("GET", f"{self.shipping_url}/track/{tracking_number}", quiet=True)
        for ev in (tr.get("data") or {}).get("events", []):
            print(f"  {ev['timestamp']}  {ev['status'].ljust(17)} {ev['location']} - {ev['description']}")

        self.show_step("Customer: dashboard stats")
        self.call_api("GET", f"{self.shipping_url}/shipments/stats", headers=hdrs)

        print("\n\033[92m=== DEMO COMPLETE ===\033[0m")


if __name__ == "__main__":
    DemoRunner().run_demo()
