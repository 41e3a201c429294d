from __future__ import annotations

import asyncio
import json
from pathlib import Path
import sys

from dotenv import load_dotenv
from loguru import logger
import typer

from subscope.adapters.cache.recurring_cache import RecurringCache
from subscope.adapters.clients.gateway import RecurringGatewayClient
from subscope.adapters.clients.plaid_link import BrowserPublicTokenSource
from subscope.adapters.storage.slot_store import JsonSlotStore
from subscope.core.config import SubscopeConfig, load_config_from_env
from subscope.core.identity import resolve_identity
from subscope.core.normalizer import to_recurring_items
from subscope.core.state import (
    IDLE_MESSAGE,
    NO_ITEMS_MESSAGE,
    DisplayState,
    Message,
    NeedsLink,
)
from subscope.models.recurring import items_to_json
from subscope.orchestrators.link_flow import LinkFlowOrchestrator
from subscope.orchestrators.page_controller import PageController
from subscope.ui.render import SubscriptionsRenderer

# Load environment variables from .env
load_dotenv()

app = typer.Typer(
    help="Subscope: find recurring charges in your linked bank accounts.",
    no_args_is_help=True,
)

_NON_ERROR_MESSAGES = {NO_ITEMS_MESSAGE, IDLE_MESSAGE}


def _configure_logging(level: str) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        format="{time:YYYY-MM-DD HH:mm:ss} [{level}] {name}: {message}",
        level=level,
    )


def _load_config_or_exit() -> SubscopeConfig:
    try:
        return load_config_from_env()
    except ValueError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(1) from None


def build_controller(config: SubscopeConfig, user_id: str | None) -> PageController:
    cache = RecurringCache(
        JsonSlotStore(config.cache_dir), ttl_seconds=config.cache_ttl_seconds
    )
    return PageController(
        user_id=user_id,
        cache=cache,
        gateway=RecurringGatewayClient.from_config(config),
    )


async def _show_impl(
    *,
    config: SubscopeConfig,
    user_id: str | None,
    connect: bool | None,
    renderer: SubscriptionsRenderer,
) -> DisplayState:
    controller = build_controller(config, user_id)
    state = await controller.activate()
    renderer.render(state)

    view = state.view()
    if user_id is None or not isinstance(view, NeedsLink):
        return state

    if connect is None:
        connect = typer.confirm("Connect a bank account now?", default=True)
    if not connect:
        return state

    orchestrator = LinkFlowOrchestrator(
        gateway=RecurringGatewayClient.from_config(config),
        public_token_source=BrowserPublicTokenSource(config.link),
        listener=controller,
    )
    typer.echo("Opening Plaid Link in your browser...")
    await orchestrator.run(user_id=user_id, link_token=view.link_token)
    renderer.render(controller.state)
    return controller.state


@app.command("show")
def show(
    user_id: str | None = typer.Option(
        None, "--user-id", help="Identity whose subscriptions to show"
    ),
    url: str | None = typer.Option(
        None,
        "--url",
        help="Page URL or query string carrying user_id, userId or uid",
    ),
    connect: bool | None = typer.Option(
        None,
        "--connect/--no-connect",
        help="Run the bank-linking flow when no data is available (asks if unset)",
    ),
) -> None:
    """Show recurring charges, linking a bank account if needed."""
    config = _load_config_or_exit()
    _configure_logging(config.log_level)

    identity = resolve_identity({"user_id": user_id} if user_id else url)
    state = asyncio.run(
        _show_impl(
            config=config,
            user_id=identity,
            connect=connect,
            renderer=SubscriptionsRenderer(),
        )
    )

    view = state.view()
    if isinstance(view, Message) and view.text not in _NON_ERROR_MESSAGES:
        raise typer.Exit(1)


@app.command("normalize")
def normalize(
    path: Path = typer.Argument(  # noqa: B008
        ..., exists=True, dir_okay=False, readable=True, help="Raw payload JSON file"
    ),
    outflow_only: bool = typer.Option(
        False, "--outflow-only", help="Ignore inflow streams"
    ),
) -> None:
    """Print the normalized recurring items for a raw stream payload."""
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        typer.echo(f"Invalid JSON in {path}: {e}", err=True)
        raise typer.Exit(1) from None

    # Accept a full gateway envelope as well as the bare payload.
    if isinstance(payload, dict) and isinstance(payload.get("response_object"), dict):
        payload = payload["response_object"].get("data")

    items = to_recurring_items(payload, streams="outflow" if outflow_only else "both")
    typer.echo(json.dumps(items_to_json(items), indent=2))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
