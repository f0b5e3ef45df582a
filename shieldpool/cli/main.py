"""
shieldpool CLI - Command Line Interface for the shielded pool

Main entry point for all CLI commands.
"""

import base64
import hashlib
import json
import click
from pathlib import Path
from typing import Optional

from shieldpool.utils.logger import setup_logging, get_logger

logger = get_logger("cli")

PBKDF2_ITERATIONS = 100000


def _fernet(note_name: str, password: str):
    """Derive the note encryption key from password using PBKDF2."""
    from cryptography.fernet import Fernet

    # Note name as salt (deterministic per note)
    salt = note_name.encode()
    key = base64.urlsafe_b64encode(
        hashlib.pbkdf2_hmac('sha256', password.encode(), salt, PBKDF2_ITERATIONS)
    )
    return Fernet(key)


def decrypt_note(note_data: dict, note_name: str, password: str):
    """
    Decrypt a stored note.

    Args:
        note_data: Loaded note JSON data
        note_name: Note name (used as salt)
        password: User's password

    Returns:
        Note, or None on a wrong password
    """
    from cryptography.fernet import InvalidToken
    from shieldpool.core.pool import Note

    try:
        plaintext = _fernet(note_name, password).decrypt(note_data["encrypted_note"].encode())
    except InvalidToken:
        return None
    return Note.from_dict(json.loads(plaintext))


def _load_note_file(data_dir: Path, name: str) -> Optional[dict]:
    note_path = data_dir / "notes" / f"{name}.json"
    if not note_path.exists():
        click.echo(f"❌ Note '{name}' not found")
        click.echo(f"   Create with: shieldpool note create --name {name}")
        return None
    return json.loads(note_path.read_text())


def _open_pools(ctx):
    """Pools persisted under the data directory, with the configured verifier."""
    from shieldpool.core.pool import PoolSet
    from shieldpool.core.storage import StorageManager

    config = ctx.obj["config"]
    prover, verifier = _proof_system(ctx)
    storage = StorageManager(ctx.obj["data_dir"])
    return PoolSet.from_config(config, verifier, storage_manager=storage), prover


def _proof_system(ctx):
    """Mock setup persisted in the data directory, or snarkjs."""
    from shieldpool.core.prover import MockProver, MockSetup, MockVerifier, SnarkJSProver, SnarkJSVerifier

    config = ctx.obj["config"]
    if not config.use_mock_verifier:
        return (
            SnarkJSProver(config.circuit_dir, config.circuit_name),
            SnarkJSVerifier(config.circuit_dir),
        )

    key_path = ctx.obj["data_dir"] / "mock_setup.key"
    if key_path.exists():
        setup = MockSetup(key=bytes.fromhex(key_path.read_text().strip()))
    else:
        setup = MockSetup.generate()
        key_path.write_text(setup.key.hex())
    return MockProver(setup), MockVerifier(setup)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--log-file", is_flag=True, help="Also log to shieldpool.log in the configured log_dir")
@click.option("--data-dir", default="~/.shieldpool", help="Data directory")
@click.option("--env-file", default=None, help="dotenv file with SHIELDPOOL_* settings")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, log_file, data_dir, env_file):
    """Shielded pool - deposits, withdrawals and SMT multiproofs"""
    import logging
    from shieldpool.core.config import load_config

    config = load_config(env_file)
    if debug or log_file:
        level = logging.DEBUG if debug else logging.INFO
        setup_logging(level=level, log_dir=config.log_dir, log_to_file=log_file, force=True)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["data_dir"] = Path(data_dir).expanduser()
    ctx.obj["data_dir"].mkdir(parents=True, exist_ok=True)


# =============================================================================
# Note Commands
# =============================================================================

@cli.group()
def note():
    """Deposit note management commands"""
    pass


@note.command("create")
@click.option("--name", default="default", help="Note name")
@click.option("--denomination", type=int, default=None, help="Pool denomination (default: first configured)")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True, help="Encryption password")
@click.pass_context
def note_create(ctx, name, denomination, password):
    """Create a new encrypted deposit note"""
    from shieldpool.crypto import field_to_hex
    from shieldpool.core.pool import Note

    config = ctx.obj["config"]
    denomination = denomination if denomination is not None else config.denominations[0]
    if denomination not in config.denominations:
        click.echo(f"❌ Denomination must be one of {list(config.denominations)}")
        return

    new_note = Note.generate()
    encrypted_note = _fernet(name, password).encrypt(json.dumps(new_note.to_dict()).encode()).decode('utf-8')

    note_path = ctx.obj["data_dir"] / "notes" / f"{name}.json"
    note_path.parent.mkdir(parents=True, exist_ok=True)

    note_data = {
        "name": name,
        "denomination": denomination,
        "commitment": field_to_hex(new_note.commitment),
        "encrypted_note": encrypted_note,
    }
    note_path.write_text(json.dumps(note_data, indent=2))

    click.echo(f"✓ Note created: {name}")
    click.echo(f"  Commitment: {note_data['commitment']}")
    click.echo(f"  Saved to: {note_path}")
    click.echo(f"  ⚠️  Remember your password - the note cannot be spent without it!")


@note.command("show")
@click.argument("name")
@click.option("--password", prompt=True, hide_input=True, help="Encryption password")
@click.pass_context
def note_show(ctx, name, password):
    """Decrypt and show a note"""
    from shieldpool.crypto import field_to_hex

    note_data = _load_note_file(ctx.obj["data_dir"], name)
    if note_data is None:
        return

    secret_note = decrypt_note(note_data, name, password)
    if secret_note is None:
        click.echo("❌ Wrong password")
        return

    click.echo(f"Note {name}")
    click.echo(f"  Denomination: {note_data['denomination']}")
    click.echo(f"  Commitment: {field_to_hex(secret_note.commitment)}")
    click.echo(f"  Nullifier hash: {field_to_hex(secret_note.nullifier_hash)}")


@note.command("list")
@click.pass_context
def note_list(ctx):
    """List all notes"""
    note_dir = ctx.obj["data_dir"] / "notes"
    if not note_dir.exists():
        click.echo("No notes found.")
        return

    for note_file in sorted(note_dir.glob("*.json")):
        data = json.loads(note_file.read_text())
        click.echo(f"  {data['name']}: {data['denomination']} {data['commitment'][:18]}...")


# =============================================================================
# Pool Commands
# =============================================================================


@cli.command("deposit")
@click.argument("name")
@click.pass_context
def deposit(ctx, name):
    """Deposit the note NAME into its pool"""
    from shieldpool.crypto import field_to_hex
    from shieldpool.utils.validation import parse_field_hex
    from shieldpool.core.errors import ShieldPoolError

    note_data = _load_note_file(ctx.obj["data_dir"], name)
    if note_data is None:
        return

    pools, _ = _open_pools(ctx)
    try:
        commitment = parse_field_hex(note_data["commitment"], "commitment")
        root = pools.deposit(commitment, note_data["denomination"])
    except (ShieldPoolError, ValueError) as e:
        click.echo(f"❌ Deposit failed: {e}")
        return

    click.echo(f"✅ Deposited {note_data['denomination']}")
    click.echo(f"   Root: {field_to_hex(root)[:20]}...")


@cli.command("withdraw")
@click.argument("name")
@click.argument("recipient")
@click.option("--password", prompt=True, hide_input=True, help="Encryption password")
@click.pass_context
def withdraw(ctx, name, recipient, password):
    """Withdraw the note NAME to RECIPIENT (0x...)"""
    from shieldpool.crypto import hex_to_bytes, is_valid_address
    from shieldpool.core.errors import ShieldPoolError

    if not is_valid_address(recipient):
        click.echo("❌ Recipient must be a 0x-prefixed 20-byte address")
        return

    note_data = _load_note_file(ctx.obj["data_dir"], name)
    if note_data is None:
        return
    secret_note = decrypt_note(note_data, name, password)
    if secret_note is None:
        click.echo("❌ Wrong password")
        return

    pools, prover = _open_pools(ctx)
    recipient_address = hex_to_bytes(recipient)
    try:
        pool = pools.pool(note_data["denomination"])
        witness = pool.prepare_withdraw(secret_note, recipient_address)
        proof, signals = prover.generate_proof(witness)
        pool.withdraw(signals.nullifier_hash, recipient_address, signals.root, proof)
    except ShieldPoolError as e:
        click.echo(f"❌ Withdraw failed: {e}")
        return

    click.echo(f"✅ Withdrew {note_data['denomination']} to {recipient}")


# =============================================================================
# Demo Command
# =============================================================================


@cli.command("demo")
@click.option("--height", default=32, help="Tree height")
def demo(height):
    """Run a deposit / withdraw / transfer / multiproof walkthrough"""
    from shieldpool.crypto import generate_keypair, field_to_hex
    from shieldpool.core.pool import CommitmentPool, Note
    from shieldpool.core.prover import mock_setup
    from shieldpool.core.smt import verify_multiproof

    click.echo("=" * 60)
    click.echo("  SHIELDED POOL - DEMO")
    click.echo("=" * 60)
    click.echo()

    click.echo("📦 Initializing components...")
    prover, verifier = mock_setup()
    pool = CommitmentPool(verifier, denomination=10**18, tree_height=height)
    alice = generate_keypair()
    click.echo(f"  ✓ Pool initialized (height={height})")
    click.echo()

    click.echo("💰 Depositing 4 notes...")
    notes = [Note.generate() for _ in range(4)]
    for n in notes:
        pool.deposit(n.commitment, 10**18)
    click.echo(f"  ✓ Root: {field_to_hex(pool.root)[:18]}...")
    click.echo()

    click.echo("💸 Withdrawing note #0 to Alice...")
    witness = pool.prepare_withdraw(notes[0], alice.address)
    proof, signals = prover.generate_proof(witness)
    pool.withdraw(signals.nullifier_hash, alice.address, signals.root, proof)
    click.echo(f"  ✓ Alice received {pool.escrow.credited_to(alice.address)}")
    click.echo()

    click.echo("🔁 Transferring note #1 into a fresh note...")
    fresh = Note.generate()
    witness = pool.prepare_transfer(notes[1], fresh.commitment)
    proof, signals = prover.generate_proof(witness)
    pool.transfer(signals.nullifier_hash, fresh.commitment, signals.root, proof)
    click.echo(f"  ✓ New leaf inserted, {pool.tree.leaf_count} leaves")
    click.echo()

    click.echo("🌳 Multiproof for notes #2, #3 and the fresh note...")
    multiproof = pool.multiproof([notes[2].commitment, notes[3].commitment, fresh.commitment])
    click.echo(f"  ✓ {len(multiproof.siblings)} siblings, {multiproof.empty_flags.count(True)} empty")
    click.echo(f"  ✓ Verified: {verify_multiproof(multiproof, pool.root)}")
    click.echo()

    click.echo("📊 Final Statistics:")
    for key, value in pool.stats().items():
        click.echo(f"  {key}: {value}")
    click.echo()
    click.echo("✅ Demo complete!")


# =============================================================================
# Metrics / Stats Commands
# =============================================================================


@cli.command("metrics")
@click.option("--leaves", default=200, help="Leaves to deposit")
@click.option("--prove", "prove_count", default=5, help="Leaves per multiproof")
@click.option("--runs", default=100, help="Multiproofs to generate")
@click.option("--height", default=32, help="Tree height")
def metrics(leaves, prove_count, runs, height):
    """Measure multiproof generation time and size"""
    from shieldpool.utils.benchmark import multiproof_metrics

    result = multiproof_metrics(leaves, prove_count, runs=runs, height=height)
    click.echo(f"Avg gen time (sec):  {result.avg_gen_time_sec}")
    click.echo(f"Avg siblings length: {result.avg_siblings}")


@cli.command("stats")
@click.pass_context
def stats(ctx):
    """Show persisted pool statistics"""
    pools, _ = _open_pools(ctx)

    click.echo("Shielded Pool Statistics")
    click.echo("-" * 40)
    for denomination, pool_stats in pools.stats().items():
        click.echo(f"  Pool {denomination}:")
        for key, value in pool_stats.items():
            click.echo(f"    {key}: {value}")


if __name__ == "__main__":
    cli()
