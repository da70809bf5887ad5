from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_calibration, render_pours, render_state


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Inspect and manage a running kegerator monitor.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Monitor API base URL (defaults to KEGERATOR_API_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("state")
def state_command(ctx: typer.Context) -> None:
    """Show every keg and sensor."""
    state = _get_state(ctx)
    render_state(state.client.get_state())


@app.command("pours")
def pours_command(
    ctx: typer.Context,
    limit: Optional[int] = typer.Option(None, "--limit", "-n", min=0, help="Maximum pours to show."),
) -> None:
    """List the most recent pours across all kegs."""
    state = _get_state(ctx)
    render_pours(state.client.list_pours(limit))


@app.command("refill")
def refill_command(
    ctx: typer.Context,
    pin: int = typer.Argument(..., help="Flow meter pin of the keg."),
    contents: Optional[str] = typer.Option(None, "--contents", "-c", help="What the keg now holds."),
) -> None:
    """Mark a keg as full again."""
    state = _get_state(ctx)
    payload = state.client.refill(pin, contents)
    typer.secho(
        f"Refilled pin {payload.get('pin')} with {payload.get('contents') or '(unchanged contents)'}",
        fg=typer.colors.GREEN,
    )


@app.command("calibrate")
def calibrate_command(
    ctx: typer.Context,
    pin: int = typer.Argument(..., help="Flow meter pin of the keg."),
    constant: Optional[float] = typer.Option(None, "--constant", help="Absolute flow constant."),
    coefficient: Optional[float] = typer.Option(
        None,
        "--coefficient",
        help="Multiply the current constant; repeated calls compound.",
    ),
) -> None:
    """Set or scale a keg's flow constant."""
    if (constant is None) == (coefficient is None):
        raise typer.BadParameter("Pass exactly one of --constant or --coefficient.")
    state = _get_state(ctx)
    payload = state.client.calibrate(pin, constant=constant, coefficient=coefficient)
    render_calibration(payload)
    if not payload.get("applied"):
        typer.secho("Flow constant unchanged.", fg=typer.colors.YELLOW)
