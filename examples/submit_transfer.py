"""Queue a token transfer and watch the cached balance refresh after confirmation."""

import logging
import os
import threading

from dotenv import load_dotenv

from midnight_bridge import MidnightClient, TransactionConfirmed, TransactionFailed

# Load environment variables from .env file
load_dotenv()

logging.basicConfig(level=logging.INFO)


def main():
    contract = os.getenv("TOKEN_CONTRACT_ADDRESS")
    recipient = os.getenv("RECIPIENT_ADDRESS")
    if not contract or not recipient:
        raise ValueError("TOKEN_CONTRACT_ADDRESS and RECIPIENT_ADDRESS must be set")

    finished = threading.Event()

    def on_confirmed(event: TransactionConfirmed) -> None:
        print(f"Confirmed {event.tx_hash} after {event.metadata['attempts']} attempt(s)")
        finished.set()

    def on_failed(event: TransactionFailed) -> None:
        print(event.failure_reason)
        finished.set()

    with MidnightClient.from_env() as client:
        client.on_confirmed(on_confirmed)
        client.on_failed(on_failed)

        print(f"Balance before: {client.call(contract, 'balance')}")

        client.start_workers()
        job = client.write(
            contract,
            "transfer",
            {"to": recipient, "amount": 1000},
            touched_selectors=["balance"],
        )
        if job is None:
            print("An identical transfer is already in flight")
            return

        if not finished.wait(timeout=120):
            print("Timed out waiting for the transfer outcome")
            return

        # The confirmation cleared the cached balance, so this is a fresh read.
        print(f"Balance after: {client.call(contract, 'balance')}")


if __name__ == "__main__":
    main()
