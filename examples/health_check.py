"""Check that the Midnight bridge is reachable and show its network."""

import logging

from dotenv import load_dotenv

from midnight_bridge import MidnightClient, MidnightError

# Load environment variables from .env file
load_dotenv()

logging.basicConfig(level=logging.INFO)


def main():
    with MidnightClient.from_env() as client:
        print(f"Bridge: {client.config.bridge.base_uri}")

        if not client.health_check():
            print("Bridge is not healthy")
            return

        try:
            metadata = client.get_network_metadata()
        except MidnightError as exc:
            print(f"Could not load network metadata: {exc.message}")
            return

        print(f"Network: {metadata.name} (chain {metadata.chain_id})")
        if metadata.explorer_uri:
            print(f"Explorer: {metadata.explorer_uri}")

        address = client.get_wallet_address()
        print(f"Wallet: {address}")
        print(f"Balance: {client.get_wallet_balance(str(address))}")


if __name__ == "__main__":
    main()
