#!/usr/bin/env python3
"""Example: Dispatcher

Runs client operations on a worker pool and collects one completion per
reply port, the way an embedding host would.

Usage:
    python examples/02_dispatcher.py

Requirements:
    pip install identity-client
"""
from __future__ import annotations

import tempfile

from identity_client import ClientConfig, Dispatcher, IdentityClient, Operation
from identity_client.backends import InMemoryContentStore, InMemoryLedger


def main() -> None:
    client = IdentityClient(
        ClientConfig(kdf_cost=10),
        ledger=InMemoryLedger(),
        storage=InMemoryContentStore(),
        verifiers={},
    )

    with tempfile.TemporaryDirectory() as state_dir, Dispatcher(client) as dispatcher:
        completion = dispatcher.call(Operation.INIT, state_dir).result()
        print(f"init -> {completion.code.name}")

        completion = dispatcher.call(Operation.SET_KEY, "correct horse battery").result()
        print(f"set_key -> {completion.code.name}: {completion.payload}")

        completion = dispatcher.call(Operation.IDENTITY, "not-a-uid").result()
        print(f"identity -> {completion.code.name}: {completion.message}")

        completion = dispatcher.call(Operation.LOCK).result()
        print(f"lock -> {completion.code.name}")

    print("\nDispatcher example complete.")


if __name__ == "__main__":
    main()
