#!/usr/bin/env python3
"""Example: Quickstart

Demonstrates the minimal setup for identity-client: initialize a client
against in-memory backends, set a device key, register a uid and anchor a
Github ownership claim.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install identity-client
"""
from __future__ import annotations

import tempfile

import identity_client
from identity_client import ClientConfig, IdentityClient, Service
from identity_client.backends import InMemoryContentStore, InMemoryLedger


def main() -> None:
    print(f"identity-client version: {identity_client.__version__}")

    ledger = InMemoryLedger()
    # No verifiers: proofs stay pending and nothing touches the network.
    client = IdentityClient(
        ClientConfig(kdf_cost=10), ledger=ledger, storage=InMemoryContentStore(), verifiers={}
    )

    with tempfile.TemporaryDirectory() as state_dir:
        # Step 1: Initialize the keystore directory
        client.init(state_dir)

        # Step 2: Generate a device key protected by a password
        result = client.set_key("correct horse battery")
        print(f"Device id: {result['account_id']}")

        # Step 3: Register a uid for the device on the ledger
        device = client.signer_account_id()
        uid = client.create_account_for(device, name="alice")
        print(f"User id: {uid} (resolves from 'alice' to {client.resolve_uid('alice')})")

        # Step 4: Claim a Github account
        submission = client.prove_identity(Service.GITHUB, "octocat")
        print(f"Anchored claim {submission['cid']} (seqno {submission['seqno']})")

        # Step 5: Inspect the identity record
        record = client.identity(uid)
        for proof in record["proofs"]:  # type: ignore[union-attr]
            print(f"  {proof['external_id']}@{proof['service']}: {proof['status']}")

        # Step 6: Lock the keystore
        client.lock()
        print(f"Device key present: {client.has_device_key()}")

    print("\nQuickstart complete.")


if __name__ == "__main__":
    main()
