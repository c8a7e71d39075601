"""Credential vault and configuration commands."""

from __future__ import annotations

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from . import config_manager
from .credentials import CredentialStore, mask_secret
from .errors import ValidationError
from .models import Provider, ValidationOutcome
from .orchestrator import Orchestrator

console = Console()

keys_app = typer.Typer(
    help="🔐 Connection vault — store and validate provider API keys.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(
    help="⚙️  Configuration — models and dispatch timeout.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Where to get a key, shown when prompting
KEY_HINTS = {
    Provider.OPENAI: "https://platform.openai.com/api-keys",
    Provider.GEMINI: "https://aistudio.google.com/apikey",
    Provider.DEEPSEEK: "https://platform.deepseek.com/api_keys",
    Provider.QWEN: "https://dashscope.console.aliyun.com/apiKey",
}


def print_success(message: str):
    console.print(f"[green]✅ {message}[/green]")


def print_error(message: str):
    console.print(f"[red]❌ {message}[/red]")


def print_info(message: str):
    console.print(f"[blue]ℹ️  {message}[/blue]")


def _parse_provider(value: str) -> Provider:
    try:
        return Provider.parse(value)
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from None


def _orchestrator() -> Orchestrator:
    """Facade over the credential file; no provider calls are made."""
    return Orchestrator(credentials=CredentialStore())


def _validate(orchestrator: Orchestrator, provider: Provider, secret: Optional[str] = None) -> ValidationOutcome:
    console.print("⏳ Validating API key...")
    return asyncio.run(orchestrator.validate_credential(provider, secret))


@keys_app.command("set")
def set_key(
    provider: str = typer.Argument(..., help="Provider: openai, gemini, deepseek, qwen."),
    api_key: Optional[str] = typer.Option(None, "--api-key", "-k", help="API key (prompted when omitted)."),
    no_validate: bool = typer.Option(False, "--no-validate", help="Skip API key validation."),
):
    """Store an API key for a provider, validating it first.

    Examples:
        aos keys set openai -k sk-...
        aos keys set gemini --no-validate
    """
    resolved = _parse_provider(provider)
    if api_key is None:
        print_info(f"Get your {resolved.display_name} API key at: {KEY_HINTS[resolved]}")
        api_key = typer.prompt(f"Enter your {resolved.display_name} API key", hide_input=True)

    orchestrator = _orchestrator()
    try:
        secret = orchestrator.clean_secret(api_key)
    except ValidationError as exc:
        print_error(f"{exc}!")
        raise typer.Exit(code=1)

    if not no_validate:
        outcome = _validate(orchestrator, resolved, secret)
        if not outcome.ok:
            print_error(f"Validation failed: {outcome.reason}")
            if not typer.confirm("Save anyway?", default=False):
                raise typer.Exit(code=1)
        else:
            print_success(outcome.reason)

    orchestrator.save_credential(resolved, secret)
    print_success(f"{resolved.display_name} key saved")


@keys_app.command("get")
def get_key(
    provider: str = typer.Argument(..., help="Provider name."),
    show: bool = typer.Option(False, "--show", help="Print the key unmasked."),
):
    """Show the stored key for a provider (masked by default)."""
    resolved = _parse_provider(provider)
    secret = _orchestrator().get_credential(resolved)
    if secret is None:
        print_error(f"No key stored for {resolved.display_name}")
        raise typer.Exit(code=1)
    console.print(secret if show else mask_secret(secret), highlight=False)


@keys_app.command("delete")
def delete_key(
    provider: str = typer.Argument(..., help="Provider name."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
):
    """Remove the stored key for a provider."""
    resolved = _parse_provider(provider)
    orchestrator = _orchestrator()
    if orchestrator.get_credential(resolved) is None:
        print_info(f"No key stored for {resolved.display_name}. Nothing to delete.")
        return
    if not yes and not typer.confirm(f"Delete {resolved.display_name} key?", default=False):
        console.print("[dim]Cancelled.[/dim]")
        return
    orchestrator.delete_credential(resolved)
    print_success(f"{resolved.display_name} key deleted")


@keys_app.command("list")
def list_keys():
    """List providers and whether a key is stored."""
    orchestrator = _orchestrator()
    present = set(orchestrator.configured_providers())

    table = Table(title="Connection Vault", show_lines=False)
    table.add_column("Provider", style="cyan")
    table.add_column("Key", style="dim")
    table.add_column("Model", style="magenta")
    for provider in Provider:
        if provider in present:
            key_cell = mask_secret(orchestrator.get_credential(provider) or "")
        else:
            key_cell = "—"
        table.add_row(provider.display_name, key_cell, config_manager.get_model(provider))
    console.print(table)
    console.print(f"\n[dim]{len(present)} of {len(Provider)} providers configured[/dim]")


@keys_app.command("validate")
def validate_key(
    provider: str = typer.Argument(..., help="Provider name."),
    api_key: Optional[str] = typer.Option(None, "--api-key", "-k", help="Key to test instead of the stored one."),
):
    """Test a key against the provider with one small request."""
    resolved = _parse_provider(provider)
    outcome = _validate(_orchestrator(), resolved, api_key)
    if outcome.ok:
        print_success(outcome.reason)
    else:
        print_error(f"Validation failed: {outcome.reason}")
        raise typer.Exit(code=1)


@config_app.command("show")
def show_config():
    """Show effective configuration."""
    settings = config_manager.describe()
    console.print(f"[dim]Config file[/dim]       {settings['config_file']}")
    console.print(f"[dim]Credentials file[/dim]  {settings['credentials_file']}")
    console.print(f"[dim]Dispatch timeout[/dim]  {settings['timeout']:g}s")
    table = Table(show_header=True, box=None, padding=(0, 2))
    table.add_column("Provider", style="cyan")
    table.add_column("Model", style="magenta")
    for name, model in settings["models"].items():
        table.add_row(name, model)
    console.print(table)


@config_app.command("set-model")
def set_model(
    provider: str = typer.Argument(..., help="Provider name."),
    model: Optional[str] = typer.Argument(None, help="Model name; omit to restore the default."),
):
    """Choose the model used for a provider."""
    resolved = _parse_provider(provider)
    ok = config_manager.save_model(resolved, model) if model else config_manager.clear_model(resolved)
    if not ok:
        print_error("Failed to save configuration!")
        raise typer.Exit(code=1)
    print_success(f"{resolved.display_name} model: {config_manager.get_model(resolved)}")


@config_app.command("set-timeout")
def set_timeout(
    seconds: float = typer.Argument(..., min=0.1, help="Per-provider call timeout in seconds."),
):
    """Set how long a provider call may run before it is marked failed."""
    if not config_manager.save_timeout(seconds):
        print_error("Failed to save configuration!")
        raise typer.Exit(code=1)
    print_success(f"Dispatch timeout set to {seconds:g}s")
