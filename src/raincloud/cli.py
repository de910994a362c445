"""
Rain Cloud CLI: owner, relayer and holder operations on a local token.

Commands:
    raincloud init       Create token state owned by a key
    raincloud sign-mint  Owner signs a gasless mint request
    raincloud relay-mint Submit a signed mint request (no key needed)
    raincloud mint       Owner mints directly
    raincloud pause      Emergency-stop all state changes
    raincloud balance    Show an account balance
    raincloud audit      View audit trail
"""

from __future__ import annotations

import json
import logging
import subprocess
import sys
import time
from decimal import Decimal
from typing import Optional

import click
from click.core import ParameterSource
from eth_account import Account
from eth_account.signers.local import LocalAccount

from .accounts import DEFAULT_NETWORK, normalize_address
from .audit import AuditTrail
from .config import TokenConfig
from .errors import RainCloudError, UnauthorizedError
from .state_store import TokenStateStore
from .token import RainCloudToken
from .typed_data import SignedMintRequest, sign_mint
from .units import format_amount, to_base_units


# ── Helpers ───────────────────────────────────────────────────────

def _config(**overrides) -> TokenConfig:
    return TokenConfig.from_env(**overrides)


def _store(config: Optional[TokenConfig] = None) -> TokenStateStore:
    config = config or _config()
    audit = AuditTrail(config.audit_path, config.audit_key_path)
    return TokenStateStore(config.state_path, audit=audit)


def _parse_duration_to_seconds(value: str) -> int:
    raw = value.strip().lower()
    units = {"s": 1, "m": 60, "h": 3600, "d": 86400}
    if len(raw) < 2 or raw[-1] not in units or not raw[:-1].isdigit():
        raise ValueError(f"Invalid duration: {value} (expected formats like 30m, 1h, 7d)")
    return int(raw[:-1]) * units[raw[-1]]


def _resolve_private_key(key_input: str) -> str:
    candidate = key_input.strip()
    if candidate.startswith("op://"):
        result = subprocess.run(
            ["op", "read", candidate],
            capture_output=True,
            text=True,
            timeout=10,
        )
        if result.returncode != 0:
            raise RuntimeError(f"Failed to read key from 1Password reference: {result.stderr.strip()}")
        candidate = result.stdout.strip()

    if candidate.startswith("0x"):
        candidate = candidate[2:]
    if len(candidate) != 64:
        raise ValueError("Private key must be a 32-byte hex string or valid op:// reference")
    int(candidate, 16)
    return "0x" + candidate


def _load_key(param: str, key_input: str, unsafe_allow_key_arg: bool) -> LocalAccount:
    """Resolve a key option to an account, refusing raw keys on argv."""
    ctx = click.get_current_context(silent=True)
    key_from_argv = (
        ctx is not None
        and ctx.get_parameter_source(param) == ParameterSource.COMMANDLINE
    )
    flag = "--" + param.replace("_", "-")
    if key_from_argv and not unsafe_allow_key_arg:
        _fail(
            f"Refusing {flag} from argv. Re-run with prompt input or pass "
            "--unsafe-allow-key-arg to acknowledge the risk."
        )
    try:
        return Account.from_key(_resolve_private_key(key_input))
    except Exception as e:
        _fail(f"Failed to load key: {e}")


def _parse_amount(value: str, base_units: bool, decimals: int) -> int:
    if base_units:
        if not value.strip().isdigit():
            raise ValueError(f"Base-unit amount must be a non-negative integer: {value}")
        return int(value)
    return to_base_units(Decimal(value.strip()), decimals)


def _fail(message: str) -> None:
    click.echo(f"❌ {message}", err=True)
    sys.exit(1)


def key_option(param: str, help_text: str):
    """Hidden-prompt key option plus its --unsafe-allow-key-arg escape hatch."""
    flag = "--" + param.replace("_", "-")

    def decorator(f):
        f = click.option(
            "--unsafe-allow-key-arg",
            is_flag=True,
            default=False,
            help=f"Allow passing {flag} via argv (unsafe; can leak in shell/process history).",
        )(f)
        f = click.option(flag, param, prompt=True, hide_input=True, help=help_text)(f)
        return f

    return decorator


amount_options = [
    click.option("--amount", required=True, help="Amount in whole tokens (e.g. 12.5)"),
    click.option("--base-units", is_flag=True, default=False, help="Treat --amount as raw base units"),
]


def with_amount(f):
    for option in reversed(amount_options):
        f = option(f)
    return f


# ── CLI ───────────────────────────────────────────────────────────

@click.group()
@click.version_option(version="0.1.0")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log operations to stderr")
def main(verbose: bool):
    """Rain Cloud Protocol: pausable token with gasless (signed) minting."""
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")


@main.command()
@key_option("owner_key", "Owner private key hex or op:// reference")
@click.option("--network", default=None, help=f"CAIP-2 network (default: env RAINCLOUD_NETWORK or {DEFAULT_NETWORK})")
@click.option("--token-address", default=None, help="Token instance address bound into the signing domain")
@click.option("--symbol", default=None, help="Token symbol (default: RAIN)")
def init(
    owner_key: str,
    unsafe_allow_key_arg: bool,
    network: Optional[str],
    token_address: Optional[str],
    symbol: Optional[str],
):
    """Create a new token owned by the given key."""
    owner = _load_key("owner_key", owner_key, unsafe_allow_key_arg).address
    try:
        config = _config(network=network, verifying_contract=token_address, symbol=symbol)
        store = _store(config)
        token = RainCloudToken(
            owner=owner,
            domain=config.domain(),
            symbol=config.symbol,
            decimals=config.decimals,
        )
        store.initialize(token)
    except (RainCloudError, ValueError) as e:
        _fail(f"Failed to initialize token: {e}")

    click.echo(f"✅ Token initialized: {token.name} ({token.symbol})")
    click.echo(f"   Owner:     {owner}")
    click.echo(f"   Network:   {config.network}")
    click.echo(f"   Address:   {config.verifying_contract}")
    click.echo(f"   State:     {config.state_path}")


@main.command()
def info():
    """Show token metadata, owner and supply."""
    try:
        token = _store().load()
    except RainCloudError as e:
        _fail(str(e))

    click.echo(f"Name:             {token.name}")
    click.echo(f"Symbol:           {token.symbol}")
    click.echo(f"Decimals:         {token.decimals()}")
    click.echo(f"Owner:            {token.owner()}")
    click.echo(f"Paused:           {token.paused()}")
    click.echo(f"Total supply:     {format_amount(token.total_supply(), token.decimals(), token.symbol)}")
    click.echo(f"Chain ID:         {token.domain.chain_id}")
    click.echo(f"Token address:    {token.domain.verifying_contract}")
    click.echo(f"Domain separator: 0x{token.domain_separator().hex()}")


@main.command("sign-mint")
@key_option("owner_key", "Owner private key hex or op:// reference")
@click.option("--to", "recipient", required=True, help="Recipient address")
@with_amount
@click.option("--deadline-in", default="1h", help="Validity window (e.g. 30m, 1h, 7d)")
@click.option("--deadline", type=int, default=None, help="Absolute deadline (unix seconds); overrides --deadline-in")
@click.option("--nonce", type=int, default=None, help="Nonce override (default: recipient's current nonce)")
@click.option("--out", "out_path", type=click.Path(dir_okay=False, writable=True), default=None,
              help="Write the signed request here instead of stdout")
def sign_mint_cmd(
    owner_key: str,
    unsafe_allow_key_arg: bool,
    recipient: str,
    amount: str,
    base_units: bool,
    deadline_in: str,
    deadline: Optional[int],
    nonce: Optional[int],
    out_path: Optional[str],
):
    """Sign a gasless mint request for a relayer to submit."""
    signer = _load_key("owner_key", owner_key, unsafe_allow_key_arg)
    try:
        token = _store().load()
        value = _parse_amount(amount, base_units, token.decimals())
        if deadline is None:
            deadline = int(time.time()) + _parse_duration_to_seconds(deadline_in)
        if nonce is None:
            nonce = token.nonces(recipient)
        signed = sign_mint(
            signer.key,
            token.domain,
            to=recipient,
            amount=value,
            nonce=nonce,
            deadline=deadline,
        )
    except (RainCloudError, ValueError) as e:
        _fail(f"Failed to sign mint request: {e}")

    payload = json.dumps(signed.to_dict(), indent=2)
    if out_path:
        with open(out_path, "w", encoding="utf-8") as f:
            f.write(payload + "\n")
        click.echo(f"✅ Signed mint request written to {out_path}")
        click.echo(f"   To:       {signed.request.to}")
        click.echo(f"   Amount:   {format_amount(value, token.decimals(), token.symbol)}")
        click.echo(f"   Nonce:    {signed.request.nonce}")
        click.echo(f"   Deadline: {time.strftime('%Y-%m-%d %H:%M', time.localtime(deadline))}")
    else:
        click.echo(payload)


@main.command("relay-mint")
@click.argument("request_file", type=click.File("r"))
def relay_mint(request_file):
    """Submit an owner-signed mint request (file path or '-' for stdin)."""
    try:
        signed = SignedMintRequest.from_dict(json.load(request_file))
    except (json.JSONDecodeError, TypeError, ValueError) as e:
        _fail(f"Invalid signed mint request: {e}")

    request = signed.request
    store = _store()
    try:
        with store.transaction() as token:
            nonce = token.mint_with_signature(
                request.to, request.amount, request.deadline, signed.signature
            )
            balance = token.balance_of(request.to)
            decimals, symbol = token.decimals(), token.symbol
    except UnauthorizedError as e:
        hint = ""
        current = store.load().nonces(request.to)
        if current != request.nonce:
            hint = f" (request nonce {request.nonce}, current nonce {current})"
        _fail(f"Mint rejected: {e}{hint}")
    except RainCloudError as e:
        _fail(f"Mint rejected: {e}")

    click.echo(f"✅ Minted {format_amount(request.amount, decimals, symbol)} to {request.to}")
    click.echo(f"   Nonce used: {nonce}")
    click.echo(f"   Balance:    {format_amount(balance, decimals, symbol)}")


@main.command()
@key_option("owner_key", "Owner private key hex or op:// reference")
@click.option("--to", "recipient", required=True, help="Recipient address")
@with_amount
def mint(owner_key: str, unsafe_allow_key_arg: bool, recipient: str, amount: str, base_units: bool):
    """Mint directly as the owner."""
    caller = _load_key("owner_key", owner_key, unsafe_allow_key_arg).address
    try:
        with _store().transaction() as token:
            value = _parse_amount(amount, base_units, token.decimals())
            token.mint(caller, recipient, value)
            decimals, symbol = token.decimals(), token.symbol
    except (RainCloudError, ValueError) as e:
        _fail(f"Mint failed: {e}")

    click.echo(f"✅ Minted {format_amount(value, decimals, symbol)} to {recipient}")


@main.command()
@key_option("key", "Holder private key hex or op:// reference")
@with_amount
def burn(key: str, unsafe_allow_key_arg: bool, amount: str, base_units: bool):
    """Burn tokens from your own balance."""
    caller = _load_key("key", key, unsafe_allow_key_arg).address
    try:
        with _store().transaction() as token:
            value = _parse_amount(amount, base_units, token.decimals())
            token.burn(caller, value)
            decimals, symbol = token.decimals(), token.symbol
    except (RainCloudError, ValueError) as e:
        _fail(f"Burn failed: {e}")

    click.echo(f"✅ Burned {format_amount(value, decimals, symbol)} from {caller}")


@main.command("burn-from")
@key_option("key", "Spender private key hex or op:// reference")
@click.option("--account", required=True, help="Account to burn from")
@with_amount
def burn_from(key: str, unsafe_allow_key_arg: bool, account: str, amount: str, base_units: bool):
    """Burn tokens from an account that approved you."""
    caller = _load_key("key", key, unsafe_allow_key_arg).address
    try:
        with _store().transaction() as token:
            value = _parse_amount(amount, base_units, token.decimals())
            token.burn_from(caller, account, value)
            decimals, symbol = token.decimals(), token.symbol
    except (RainCloudError, ValueError) as e:
        _fail(f"Burn failed: {e}")

    click.echo(f"✅ Burned {format_amount(value, decimals, symbol)} from {account}")


@main.command()
@key_option("key", "Sender private key hex or op:// reference")
@click.option("--to", "recipient", required=True, help="Recipient address")
@with_amount
def transfer(key: str, unsafe_allow_key_arg: bool, recipient: str, amount: str, base_units: bool):
    """Transfer tokens to another account."""
    caller = _load_key("key", key, unsafe_allow_key_arg).address
    try:
        with _store().transaction() as token:
            value = _parse_amount(amount, base_units, token.decimals())
            token.transfer(caller, recipient, value)
            decimals, symbol = token.decimals(), token.symbol
    except (RainCloudError, ValueError) as e:
        _fail(f"Transfer failed: {e}")

    click.echo(f"✅ Transferred {format_amount(value, decimals, symbol)} to {recipient}")


@main.command()
@key_option("key", "Holder private key hex or op:// reference")
@click.option("--spender", required=True, help="Spender address")
@with_amount
def approve(key: str, unsafe_allow_key_arg: bool, spender: str, amount: str, base_units: bool):
    """Set a spender's allowance over your balance."""
    caller = _load_key("key", key, unsafe_allow_key_arg).address
    try:
        with _store().transaction() as token:
            value = _parse_amount(amount, base_units, token.decimals())
            token.approve(caller, spender, value)
            decimals, symbol = token.decimals(), token.symbol
    except (RainCloudError, ValueError) as e:
        _fail(f"Approve failed: {e}")

    click.echo(f"✅ Allowance for {spender} set to {format_amount(value, decimals, symbol)}")


@main.command()
@key_option("owner_key", "Owner private key hex or op:// reference")
def pause(owner_key: str, unsafe_allow_key_arg: bool):
    """Pause all transfers, mints and burns."""
    caller = _load_key("owner_key", owner_key, unsafe_allow_key_arg).address
    try:
        with _store().transaction() as token:
            token.pause(caller)
    except RainCloudError as e:
        _fail(f"Pause failed: {e}")

    click.echo("⏸️  Token paused")


@main.command()
@key_option("owner_key", "Owner private key hex or op:// reference")
def unpause(owner_key: str, unsafe_allow_key_arg: bool):
    """Lift an emergency pause."""
    caller = _load_key("owner_key", owner_key, unsafe_allow_key_arg).address
    try:
        with _store().transaction() as token:
            token.unpause(caller)
    except RainCloudError as e:
        _fail(f"Unpause failed: {e}")

    click.echo("▶️  Token unpaused")


@main.command("transfer-ownership")
@key_option("owner_key", "Owner private key hex or op:// reference")
@click.option("--new-owner", required=True, help="New owner address")
def transfer_ownership(owner_key: str, unsafe_allow_key_arg: bool, new_owner: str):
    """Hand ownership (and mint-signing authority) to another account."""
    caller = _load_key("owner_key", owner_key, unsafe_allow_key_arg).address
    try:
        with _store().transaction() as token:
            token.transfer_ownership(caller, new_owner)
            current = token.owner()
    except (RainCloudError, ValueError) as e:
        _fail(f"Ownership transfer failed: {e}")

    click.echo(f"✅ Ownership transferred to {current}")


@main.command()
@click.argument("address")
def balance(address: str):
    """Show an account balance."""
    try:
        token = _store().load()
        value = token.balance_of(address)
    except (RainCloudError, ValueError) as e:
        _fail(str(e))

    click.echo(f"{format_amount(value, token.decimals(), token.symbol)} ({value} base units)")


@main.command()
@click.argument("address")
def nonce(address: str):
    """Show the next delegated-mint nonce for an account."""
    try:
        value = _store().load().nonces(address)
    except (RainCloudError, ValueError) as e:
        _fail(str(e))

    click.echo(str(value))


@main.command()
def supply():
    """Show total supply."""
    try:
        token = _store().load()
    except RainCloudError as e:
        _fail(str(e))

    click.echo(f"Total supply: {format_amount(token.total_supply(), token.decimals(), token.symbol)}")
    click.echo(f"Whole units:  {token.total_supply_in_whole_units()}")


@main.command()
@click.option("--account", default=None, help="Filter by account address")
@click.option("--limit", type=int, default=20, help="Number of events")
def audit(account: Optional[str], limit: int):
    """View the audit trail."""
    config = _config()
    try:
        trail = AuditTrail(config.audit_path, config.audit_key_path)
        events = trail.read_events(
            account=normalize_address(account) if account else None,
            limit=limit,
        )
    except (RainCloudError, ValueError) as e:
        _fail(str(e))

    if not events:
        click.echo("No audit events found.")
        return

    for event in events:
        ts = time.strftime("%H:%M:%S", time.localtime(event.timestamp))
        status = "✅" if event.success else "❌"
        amount = f" {event.amount}" if event.amount is not None else ""
        parties = ""
        if event.account or event.counterparty:
            parties = f" {event.account or '-'} → {event.counterparty or '-'}"
        reason = f" ({event.reason})" if event.reason and not event.success else ""
        click.echo(f"  {ts} {status} {event.event_type}{amount}{parties}{reason}")


if __name__ == "__main__":
    main()
