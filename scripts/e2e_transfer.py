#!/usr/bin/env python3
"""
E2E Transfer Script for the ZK Account Orchestrator

Runs one small native transfer against a deployed instance on a testnet:
1. Health check
2. Check the owner's ZK Account and balances
3. Resolve the recipient (address or email)
4. Send the transfer
5. Poll the settlement notice until the receipt is known

Usage:
    ZK_E2E_PRIVATE_KEY=0x... python3 scripts/e2e_transfer.py \\
        --owner 0xYourOwnerWallet --to bob@example.com --amount 0.0001 \\
        [--base-url URL] [--chain-id 17000] [--cookie "connect.sid=..."]

The private key is read from the environment only, never from arguments.
A session cookie is required when the account is proof-gated.
"""

import argparse
import os
import sys
import time
import requests
from typing import Optional, Dict, Any

# Configuration
DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_CHAIN_ID = 17000
SETTLEMENT_POLL_SECONDS = 3
SETTLEMENT_POLL_ATTEMPTS = 20


class E2ETransfer:
    def __init__(self, base_url: str, chain_id: int, owner: str, cookie: Optional[str] = None):
        self.base_url = base_url.rstrip("/")
        self.chain_id = chain_id
        self.owner = owner
        self.cookie = cookie
        self.tx_hash: Optional[str] = None

    def _request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict] = None,
        params: Optional[Dict] = None,
    ) -> Dict[str, Any]:
        """Make an API request."""
        url = f"{self.base_url}{endpoint}"
        headers = {"Content-Type": "application/json"}

        if self.cookie:
            headers["Cookie"] = self.cookie

        response = requests.request(method, url, json=data, params=params, headers=headers, timeout=60)

        try:
            result = response.json()
        except ValueError:
            result = {"error": response.text}

        if response.status_code >= 400:
            print(f"  ERROR {response.status_code}: {result}")

        return result

    def health(self) -> bool:
        print("[1] Health check...")
        result = self._request("GET", "/health")
        if result.get("status") == "healthy":
            print(f"    OK - environment {result.get('environment')}")
            return True
        print(f"    FAILED - {result}")
        return False

    def check_account(self) -> bool:
        """Check that the owner has a ZK Account with funds."""
        print(f"[2] Checking ZK Account for {self.owner}...")

        result = self._request("GET", f"/v1/accounts/{self.owner}", params={"chain_id": self.chain_id})
        data = result.get("data")
        if not data:
            return False

        print(f"    Owner balance: {data['owner_balance']['formatted']} ETH")
        if not data["has_account"]:
            print("    ERROR: owner has no ZK Account on this chain")
            return False

        account = data["account"]
        print(f"    ZK Account: {account['zk_account_address']}")
        print(f"    Requires proof: {account['requires_proof']}")
        for balance in data["balances"]:
            print(f"    {balance['asset']}: {balance['formatted']}")
        return True

    def resolve(self, recipient: str) -> Optional[str]:
        print(f"[3] Resolving recipient {recipient}...")

        result = self._request(
            "GET",
            "/v1/recipients/resolve",
            params={"input": recipient, "chain_id": self.chain_id},
        )
        if "data" in result:
            address = result["data"]["address"]
            via = "directory" if result["data"]["via_directory"] else "address"
            print(f"    OK - {address} (via {via})")
            return address
        return None

    def send(self, private_key: str, to: str, amount: str) -> bool:
        print(f"[4] Sending {amount} ETH to {to}...")

        result = self._request("POST", "/v1/transfers/native", {
            "private_key": private_key,
            "owner_address": self.owner,
            "to": to,
            "amount": amount,
            "chain_id": self.chain_id,
        })

        data = result.get("data")
        if not data:
            return False
        if not data["success"]:
            print(f"    FAILED at {data['stage']}: {data['error_kind']} - {data['error_message']}")
            if data["error_kind"] == "PROOF_REPLAY":
                print("    Retry to fetch a fresh proof")
            return False

        self.tx_hash = data["tx_hash"]
        print(f"    OK - {self.tx_hash}")
        if data.get("explorer_url"):
            print(f"    {data['explorer_url']}")
        return True

    def wait_for_settlement(self) -> Dict[str, Any]:
        """Poll until the confirmation tracker has recorded a notice."""
        print("[5] Waiting for settlement...")

        for _ in range(SETTLEMENT_POLL_ATTEMPTS):
            response = requests.get(
                f"{self.base_url}/v1/transfers/{self.tx_hash}/settlement", timeout=30
            )
            if response.status_code == 200:
                notice = response.json()["data"]
                if notice["confirmed"]:
                    state = "REVERTED" if notice["reverted"] else "CONFIRMED"
                    print(f"    {state} in block {notice['block_number']}")
                else:
                    print(f"    Confirmation unknown ({notice['reason']}); check the explorer")
                return notice
            time.sleep(SETTLEMENT_POLL_SECONDS)

        print("    No settlement notice yet")
        return {}

    def run(self, private_key: str, recipient: str, amount: str) -> bool:
        print("=" * 50)
        print("E2E Transfer - ZK Account Orchestrator")
        print(f"Base URL: {self.base_url}")
        print(f"Chain: {self.chain_id}")
        print("=" * 50)
        print()

        if not self.health():
            return False
        print()

        if not self.check_account():
            return False
        print()

        if not self.resolve(recipient):
            return False
        print()

        if not self.send(private_key, recipient, amount):
            return False
        print()

        notice = self.wait_for_settlement()
        print()

        print("=" * 50)
        print("TRANSFER COMPLETE")
        print(f"Transaction: {self.tx_hash}")
        print("=" * 50)

        return bool(notice) and not notice.get("reverted", False)


def main():
    parser = argparse.ArgumentParser(description="E2E transfer for the ZK Account Orchestrator")
    parser.add_argument("--base-url", default=DEFAULT_BASE_URL, help="API base URL")
    parser.add_argument("--chain-id", type=int, default=DEFAULT_CHAIN_ID, help="Chain ID")
    parser.add_argument("--owner", required=True, help="Owner wallet address")
    parser.add_argument("--to", required=True, help="Recipient address or email")
    parser.add_argument("--amount", default="0.0001", help="Amount in ETH")
    parser.add_argument("--cookie", default=None, help="Identity session cookie for proof-gated accounts")
    args = parser.parse_args()

    private_key = os.environ.get("ZK_E2E_PRIVATE_KEY")
    if not private_key:
        print("ZK_E2E_PRIVATE_KEY is not set")
        sys.exit(2)

    e2e = E2ETransfer(args.base_url, args.chain_id, args.owner, args.cookie)
    success = e2e.run(private_key, args.to, args.amount)

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
