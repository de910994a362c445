"""
End-to-end demo: owner signs, relayer submits, replay bounces.
"""

import json
import time

from eth_account import Account

from raincloud import RainCloudToken, SignedMintRequest, UnauthorizedError, sign_mint
from raincloud.typed_data import MintDomain
from raincloud.units import format_amount, to_base_units


TOKEN_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"


def main():
    print("🌧️  Rain Cloud Protocol: gasless mint demo")
    print("=" * 45)
    print()

    owner = Account.create()
    recipient = Account.create()
    domain = MintDomain.for_network(TOKEN_ADDRESS, "eip155:8453")
    token = RainCloudToken(owner=owner.address, domain=domain)

    # 1. Owner signs off-chain
    print("1️⃣  Owner signs a mint request...")
    amount = to_base_units("100")
    signed = sign_mint(
        owner.key,
        domain,
        to=recipient.address,
        amount=amount,
        nonce=token.nonces(recipient.address),
        deadline=int(time.time()) + 3600,
    )
    wire = json.dumps(signed.to_dict())
    print(f"   ✅ Signed for {recipient.address} (nonce {signed.request.nonce})")
    print()

    # 2. Anyone relays it
    print("2️⃣  Relayer submits the request...")
    request = SignedMintRequest.from_dict(json.loads(wire))
    used = token.mint_with_signature(
        request.request.to, request.request.amount, request.request.deadline, request.signature
    )
    print(f"   ✅ Nonce used: {used}")
    print(f"   Balance: {format_amount(token.balance_of(recipient.address), symbol=token.symbol)}")
    print()

    # 3. The same request again
    print("3️⃣  Replaying the same request...")
    try:
        token.mint_with_signature(
            request.request.to, request.request.amount, request.request.deadline, request.signature
        )
        print("   ❌ Replay was accepted")
    except UnauthorizedError as e:
        print(f"   ✅ Rejected: {e}")
    print(f"   Next nonce: {token.nonces(recipient.address)}")
    print(f"   Total supply: {format_amount(token.total_supply(), symbol=token.symbol)}")


if __name__ == "__main__":
    main()
