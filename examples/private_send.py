#!/usr/bin/env python3
"""
Shroud Private Send Demo

Routes SOL to a recipient through the privacy pool via burner wallets.

Prerequisites:
1. Start local validator: solana-test-validator
2. Deploy the smart wallet and pool programs, then export their IDs:
       export SHROUD_RPC_URL=http://localhost:8899
       export SHROUD_WALLET_PROGRAM_ID=<wallet program id>
       export SHROUD_POOL_PROGRAM_ID=<pool program id>
3. A funded fee payer keypair: export SHROUD_FEE_PAYER=<base58 secret key>
4. Fund the main wallet printed below
5. Install SDK: pip install -e .

Usage:
    python examples/private_send.py <recipient> <amount_sol> [privacy_level]
"""

import asyncio
import logging
import os
import sys

from solders.pubkey import Pubkey

from shroud import (
    PrivateSendError,
    SendConfig,
    StepState,
    derive_identity,
    execute_private_send,
    generate_secret,
    routing_id,
)
from shroud.scheduler import estimated_total_delay, format_duration
from shroud.solana_client import find_wallet_pda
from shroud.utils import LAMPORTS_PER_SOL

ICONS = {
    StepState.PENDING: " ",
    StepState.RUNNING: ">",
    StepState.COMPLETED: "+",
    StepState.ERROR: "!",
}


def print_step(status):
    print(f"  [{ICONS[status.status]}] {status.step:>2}. {status.message}")


async def main():
    if len(sys.argv) < 3:
        print(__doc__)
        return 1

    recipient = sys.argv[1]
    amount = int(float(sys.argv[2]) * LAMPORTS_PER_SOL)
    privacy_level = int(sys.argv[3]) if len(sys.argv) > 3 else 4

    logging.basicConfig(level=logging.WARNING)
    try:
        config = SendConfig.from_env()
        config.require_fee_payer()
    except PrivateSendError as e:
        print(f"Configuration error: {e}")
        return 1

    # Reuse a saved secret so stranded funds stay recoverable
    master_secret = os.environ.get("SHROUD_MASTER_SECRET")
    if not master_secret:
        master_secret = generate_secret()
        print(f"Generated master secret (save it!): {master_secret}")

    print("=" * 60)
    print("Shroud - Private Send")
    print("=" * 60)
    main_identity = derive_identity(master_secret, 0)
    main_wallet, _ = find_wallet_pda(
        Pubkey.from_string(config.wallet_program_id),
        routing_id(main_identity.public_address),
    )
    print(f"Main wallet:   {main_wallet}")
    print(f"Recipient:     {recipient}")
    print(f"Amount:        {amount / LAMPORTS_PER_SOL} SOL")
    print(f"Privacy level: {privacy_level}")
    delay = estimated_total_delay(privacy_level, config.max_delay_ms)
    print(f"Est. delay:    {format_duration(delay)}")
    print()

    try:
        result = await execute_private_send(
            master_secret,
            recipient,
            amount,
            privacy_level,
            on_step_update=print_step,
            config=config,
        )
    except PrivateSendError as e:
        print(f"\nPrivate send failed: {e}")
        return 1

    print()
    print(f"Transactions: {len(result.signatures)}")
    for sig in result.signatures:
        print(f"    {sig}")
    print("Burner wallets:")
    for address in result.burner_addresses:
        print(f"    {address}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
