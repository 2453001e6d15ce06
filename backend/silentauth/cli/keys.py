"""Flask CLI command generating RSA signing keys."""

from __future__ import annotations

from pathlib import Path

import click

from silentauth.infra.jwt.keys import generate_private_key, private_key_to_pem, public_key_to_pem


@click.group("keys")
def keys_cli() -> None:
    """Signing key management."""


@keys_cli.command("generate")
@click.option("--out-dir", type=click.Path(file_okay=False, path_type=Path), default=Path("."),
              show_default=True, help="Directory receiving the PEM files.")
@click.option("--kid", default="primary", show_default=True, help="Key identifier used in file names.")
@click.option("--bits", type=click.IntRange(min=2048), default=2048, show_default=True)
@click.option("--force", is_flag=True, help="Overwrite existing files.")
def generate_command(out_dir: Path, kid: str, bits: int, force: bool) -> None:
    """Write ``<kid>.key.pem`` (private) and ``<kid>.pub.pem`` (public)."""
    private_path = out_dir / f"{kid}.key.pem"
    public_path = out_dir / f"{kid}.pub.pem"
    existing = [p for p in (private_path, public_path) if p.exists()]
    if existing and not force:
        raise click.ClickException(f"Refusing to overwrite {existing[0]}; pass --force")

    out_dir.mkdir(parents=True, exist_ok=True)
    key = generate_private_key(bits)
    private_path.write_bytes(private_key_to_pem(key))
    private_path.chmod(0o600)
    public_path.write_bytes(public_key_to_pem(key.public_key()))

    click.echo(f"Wrote {private_path} and {public_path}")
    click.echo(f"Set JWT_PRIVATE_KEY_FILE={private_path} and JWT_KEY_ID={kid}")
    click.echo(f"After rotating, keep verifying old tokens with JWT_PREVIOUS_PUBLIC_KEYS={kid}={public_path}")
