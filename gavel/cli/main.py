"""
Gavel CLI - operator commands for the auction marketplace.

tick and cascade are the cron drivers; schedule them every minute.
"""

import json
import time
from pathlib import Path
from typing import Optional

import click

from gavel.utils.logger import get_logger, setup_logging


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, sort_keys=True))


def _service(ctx):
    from gavel.api import MarketService
    from gavel.oracle import create_oracle

    cfg = ctx.obj["config"]
    return MarketService.open(ctx.obj["data_dir"], create_oracle(cfg), cfg)


def _resolve_now(now: Optional[int]) -> int:
    return int(time.time()) if now is None else now


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--data-dir", default=None, help="Data directory (default: GAVEL_DATA_DIR or ./data)")
@click.option("--env-file", default=None, help="Path to a .env file")
@click.option("--log-to-file", is_flag=True, help="Also write logs under GAVEL_LOG_DIR (default: ./logs)")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, data_dir, env_file, log_to_file):
    """Gavel - timed auctions with settlement cascades"""
    import logging

    from gavel.core.config import load_config

    cfg = load_config(env_file)
    level = logging.DEBUG if debug else logging.INFO
    setup_logging(level=level, log_dir=cfg.log_dir if log_to_file else None)

    ctx.ensure_object(dict)
    ctx.obj["config"] = cfg
    ctx.obj["data_dir"] = Path(data_dir).expanduser() if data_dir else cfg.data_dir
    ctx.obj["data_dir"].mkdir(parents=True, exist_ok=True)


# =============================================================================
# Cron drivers
# =============================================================================


@cli.command("tick")
@click.option("--now", type=int, default=None, help="Unix time to evaluate at (default: wall clock)")
@click.pass_context
def tick(ctx, now):
    """Apply due auction status transitions"""
    service = _service(ctx)
    try:
        transitions = service.lifecycle.tick(_resolve_now(now))
        _echo_json({"transitions": [t.to_dict() for t in transitions]})
    finally:
        service.close()


@cli.command("cascade")
@click.option("--now", type=int, default=None, help="Unix time to evaluate at (default: wall clock)")
@click.pass_context
def cascade(ctx, now):
    """Expire unpaid settlements and offer auctions to the next bidder"""
    service = _service(ctx)
    try:
        _echo_json(service.cascade.tick(_resolve_now(now)).to_dict())
    finally:
        service.close()


@cli.command("expired")
@click.option("--now", type=int, default=None, help="Unix time to evaluate at (default: wall clock)")
@click.pass_context
def expired(ctx, now):
    """List pending settlements past their deadline"""
    service = _service(ctx)
    try:
        rows = service.cascade.list_expired(_resolve_now(now))
        _echo_json({"count": len(rows), "settlements": [s.to_dict() for s in rows]})
    finally:
        service.close()


# =============================================================================
# Inspection
# =============================================================================


@cli.command("show")
@click.argument("auction_id")
@click.pass_context
def show(ctx, auction_id):
    """Show an auction with its bids and settlement chain"""
    from gavel.core.errors import MarketError

    service = _service(ctx)
    try:
        detail = service.lifecycle.get_auction(auction_id)
        detail["settlements"] = [
            s.to_dict() for s in service.storage.settlement_chain(auction_id)
        ]
        _echo_json(detail)
    except MarketError as e:
        raise click.ClickException(e.message)
    finally:
        service.close()


@cli.command("stats")
@click.pass_context
def stats(ctx):
    """Show auction counts by status"""
    service = _service(ctx)
    try:
        counts = service.storage.count_auctions_by_status()
        click.echo("Auctions:")
        for label in ("upcoming", "current", "past", "settling", "completed", "failed"):
            click.echo(f"  {label:<10} {counts.get(label, 0)}")
    finally:
        service.close()


@cli.command("keygen")
def keygen():
    """Generate a signing key and its account id"""
    from gavel.crypto import generate_keypair

    kp = generate_keypair()
    click.echo(f"Account:     {kp.account_id}")
    click.echo(f"Private key: {kp.private_key.hex()}")
    click.echo("Keep the private key secret; it cannot be recovered.")


# =============================================================================
# Demo
# =============================================================================


@cli.command("demo")
@click.pass_context
def demo(ctx):
    """Run an auction end to end, including one settlement cascade"""
    import tempfile

    from gavel.api import MarketService
    from gavel.auth import sign_challenge
    from gavel.core.config import UNITS_PER_COIN
    from gavel.core.storage import StorageManager
    from gavel.crypto import generate_keypair
    from gavel.oracle import BoundedOracle, InMemoryBalanceOracle

    logger = get_logger("demo")
    cfg = ctx.obj["config"]
    oracle = InMemoryBalanceOracle()

    click.echo("=" * 60)
    click.echo("  GAVEL - DEMO")
    click.echo("=" * 60)
    click.echo()

    with tempfile.TemporaryDirectory() as tmp:
        service = MarketService(StorageManager(Path(tmp)), BoundedOracle(oracle, cfg.oracle_timeout), cfg)
        now = int(time.time())

        def checked(resp):
            if not resp.ok:
                raise click.ClickException(f"{resp.status}: {resp.body['error']}")
            return resp.body

        def sign_in(name, kp, at):
            message = service.auth.build_challenge(kp.account_id, at)
            body = checked(service.sign_in(
                {"account_id": kp.account_id, "signature": sign_challenge(message, kp.private_key),
                 "message": message},
                now=at,
            ))
            click.echo(f"  ✓ {name} signed in as {kp.account_id[:16]}...")
            return body["session"]["token"]

        click.echo("🔑 Signing in...")
        artist_key, alice_key, bob_key = generate_keypair(), generate_keypair(), generate_keypair()
        artist, alice, bob = artist_key.account_id, alice_key.account_id, bob_key.account_id
        artist_token = sign_in("Artist", artist_key, now)
        alice_token = sign_in("Alice", alice_key, now)
        bob_token = sign_in("Bob", bob_key, now)
        for account in (alice, bob):
            oracle.set_balance(account, 10 * UNITS_PER_COIN)
        click.echo()

        click.echo("🖼️  Creating auction...")
        start, end = now + 60, now + 60 + 3600
        created = checked(service.create_auction(artist_token, {
            "title": "Sunset over the harbour",
            "description": "Generative piece, single edition.",
            "image_ref": "ipfs://demo",
            "tags": ["generative", "landscape"],
            "reserve_price": UNITS_PER_COIN,
            "min_bid_increment": UNITS_PER_COIN // 10,
            "start_time": start,
            "end_time": end,
        }, now=now))
        auction_id = created["auction"]["auction_id"]
        click.echo(f"  ✓ Auction {auction_id} scheduled")
        click.echo()

        click.echo("🔨 Bidding...")
        checked(service.run_lifecycle_tick(cfg.cron_secret, now=start))
        for token, name, amount in ((alice_token, "Alice", 1.1), (bob_token, "Bob", 1.5)):
            resp = service.place_bid(token, auction_id, {"amount": int(amount * UNITS_PER_COIN)}, now=start + 10)
            click.echo(f"  {'✓' if resp.ok else '✗'} {name} bids {amount} (status {resp.status})")
        click.echo()

        click.echo("⏱️  Auction ends; Bob has 30 minutes to pay...")
        closed = checked(service.run_lifecycle_tick(cfg.cron_secret, now=end))["transitions"][0]
        click.echo(f"  ✓ {closed['from']} -> {closed['to']}")
        sweep = checked(service.run_cascade(cfg.cron_secret, now=end + cfg.settlement_window + 1))
        click.echo(f"  ✓ Bob missed the window; cascaded {sweep['cascaded']} settlement(s)")
        click.echo()

        click.echo("💸 Alice pays...")
        pay_at = end + cfg.settlement_window + 2
        settlement = checked(service.get_settlement(auction_id, now=pay_at))["settlement"]
        alice_token = sign_in("Alice", alice_key, pay_at)
        oracle.record_transfer("demo-tx-1", alice, artist, settlement["auction"]["winning_bid"])
        paid = checked(service.verify_payment(
            alice_token, settlement["settlement_id"], {"tx_signature": "demo-tx-1"}, now=pay_at + 1,
        ))
        click.echo(f"  ✓ Settlement {paid['settlement']['status']}")
        detail = service.lifecycle.get_auction(auction_id)
        click.echo(f"  ✓ Auction {detail['status']}, winner pays {detail['winning_bid'] / UNITS_PER_COIN}")
        bob_account = service.accounts.get(bob)
        click.echo(f"  ✓ Bob's strikes: {bob_account.strike_count}")
        click.echo()

        logger.debug("Demo finished")
        service.close()

    click.echo("=" * 60)
    click.echo("  DEMO COMPLETE")
    click.echo("=" * 60)


if __name__ == "__main__":
    cli()
