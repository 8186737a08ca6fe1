"""SecureVault CLI - encrypted file vault tool."""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ..exceptions import VaultError

app = typer.Typer(
    name="secure-vault",
    help="Encrypt files with per-file keys and manage vault accounts.",
    no_args_is_help=True,
)

console = Console()


def _manager():
    from ..auth import create_session_manager

    return create_session_manager()


def _fail(message: str) -> None:
    console.print(f"[red]Error: {message}[/red]")
    raise typer.Exit(1)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Configure logging before any command runs."""
    from ..config import get_settings
    from ..utils.logging import setup_logging

    settings = get_settings()
    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_file=settings.log_file,
    )


@app.command()
def encrypt(
    input_file: Path = typer.Argument(..., help="File to encrypt"),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Output path (default: <file>.enc)",
    ),
):
    """
    Encrypt a file with a new random key.

    The key is printed once. Store it safely: it cannot be recovered.
    """
    from ..crypto import get_engine

    if not input_file.exists():
        _fail(f"File not found: {input_file}")

    if output is None:
        output = input_file.with_suffix(input_file.suffix + ".enc")

    try:
        payload = get_engine().encrypt_file(input_file, output)
    except VaultError as e:
        _fail(str(e))

    console.print(f"[green]Encrypted:[/green] {output}")
    console.print(f"Algorithm: {payload.algorithm}")
    console.print(f"Checksum:  {payload.checksum}")
    console.print("\n[bold yellow]Decryption key (shown once):[/bold yellow]")
    console.print(payload.key_material, markup=False, highlight=False, soft_wrap=True)


@app.command()
def decrypt(
    input_file: Path = typer.Argument(..., help="Encrypted file"),
    key: str = typer.Option(..., "--key", "-k", prompt=True, hide_input=True, help="Decryption key"),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Output path (default: strip .enc)",
    ),
    expected_checksum: Optional[str] = typer.Option(
        None,
        "--checksum", "-c",
        help="Expected SHA-256 of the plaintext",
    ),
):
    """
    Decrypt a file encrypted with the encrypt command.
    """
    from ..crypto import get_engine

    if not input_file.exists():
        _fail(f"File not found: {input_file}")

    if output is None:
        name = input_file.name
        output = input_file.parent / (name[:-4] if name.endswith(".enc") else f"{name}.dec")

    try:
        actual = get_engine().decrypt_file(input_file, output, key)
    except VaultError as e:
        _fail(str(e))

    if expected_checksum and actual != expected_checksum.strip().lower():
        output.unlink(missing_ok=True)
        _fail("Decrypted content does not match the expected checksum")

    console.print(f"[green]Decrypted:[/green] {output}")
    console.print(f"Checksum: {actual}")


@app.command()
def checksum(
    input_file: Path = typer.Argument(..., help="File to hash"),
):
    """
    Print the SHA-256 checksum of a file.
    """
    from ..crypto import digest_file

    if not input_file.exists():
        _fail(f"File not found: {input_file}")

    console.print(digest_file(input_file))


@app.command()
def register(
    email: str = typer.Argument(..., help="Account email"),
    password: str = typer.Option(
        ..., prompt=True, hide_input=True, confirmation_prompt=True, help="Account password"
    ),
):
    """
    Create a new account.
    """
    manager = _manager()

    try:
        account = manager.register(email, password)
    except VaultError as e:
        _fail(str(e))

    strength = manager.password_strength(password)
    console.print(f"[green]Registered[/green] {account.email}")
    if strength < 4:
        console.print(f"[yellow]Password strength {strength}/6 - consider a stronger password[/yellow]")


@app.command()
def login(
    email: str = typer.Argument(..., help="Account email"),
    password: str = typer.Option(..., prompt=True, hide_input=True, help="Account password"),
):
    """
    Log in, prompting for an MFA code when the account requires one.
    """
    manager = _manager()

    try:
        result = manager.login(email, password)
        if result.require_mfa:
            code = typer.prompt("MFA code")
            manager.complete_mfa(result.pending_user_id, code)
    except VaultError as e:
        _fail(str(e))

    session = manager.current_session()
    console.print(f"[green]Logged in as[/green] {session.email}")


@app.command()
def logout():
    """
    End the current session.
    """
    _manager().logout()
    console.print("Logged out")


@app.command()
def whoami():
    """
    Show the current session.
    """
    manager = _manager()
    session = manager.current_session()
    if session is None:
        _fail("Not logged in")

    manager.touch()
    account = manager.store.get_by_id(session.user_id)

    console.print(f"\n[bold]{session.email}[/bold]")
    console.print(f"Session expires: {session.expires_at.isoformat(timespec='seconds')}")
    if account is not None:
        console.print(f"MFA: {'enabled' if account.mfa_enabled else 'disabled'}")


@app.command("mfa-setup")
def mfa_setup():
    """
    Enable TOTP multi-factor authentication for the current account.
    """
    manager = _manager()

    try:
        session = manager.require_session()
        enrollment = manager.setup_mfa(session.user_id)
        console.print("Add this account to your authenticator app:\n")
        console.print(enrollment.provisioning_uri, markup=False, highlight=False, soft_wrap=True)
        console.print(f"\nOr enter the secret manually: {enrollment.secret}", markup=False, soft_wrap=True)

        code = typer.prompt("Code from your app")
        manager.confirm_mfa(session.user_id, enrollment.secret, code)
    except VaultError as e:
        _fail(str(e))

    console.print("[green]MFA enabled[/green]")


@app.command()
def audit(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of entries to show"),
):
    """
    Show recent audit log entries. Requires an active session.
    """
    manager = _manager()
    try:
        manager.require_session()
    except VaultError as e:
        _fail(str(e))
    manager.touch()

    if manager.audit is None:
        _fail("Audit log is not configured")

    entries = manager.audit.entries(limit=limit)

    table = Table(title=f"Audit log ({len(entries)} entries)")
    table.add_column("Time", style="cyan")
    table.add_column("Level")
    table.add_column("Category")
    table.add_column("User")
    table.add_column("Message")

    for entry in entries:
        table.add_row(
            entry.timestamp.isoformat(timespec="seconds"),
            entry.level.value,
            entry.category.value,
            entry.user or "-",
            entry.message,
        )

    console.print(table)


@app.command()
def version():
    """Show version information."""
    from .. import __version__

    console.print(f"SecureVault v{__version__}")
    console.print("Encrypted file vault")


def main():
    """Entry point for the CLI."""
    from dotenv import load_dotenv

    load_dotenv()
    app()


if __name__ == "__main__":
    main()
