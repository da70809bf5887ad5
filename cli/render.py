from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _fmt_volume(value: Any) -> str:
    if value is None:
        return "n/a"
    return f"{float(value):.2f} L"


def render_state(payload: Dict[str, Any]) -> None:
    echo_heading("Kegs")
    kegs = payload.get("kegs") or []
    if kegs:
        for keg in kegs:
            typer.echo(
                f"  - pin {keg.get('pin')} [{keg.get('keg_type')}] {keg.get('contents') or '(empty)'}: "
                f"{_fmt_volume(keg.get('remaining_volume'))} of {_fmt_volume(keg.get('total_volume'))} left, "
                f"flow constant {keg.get('flow_constant')}"
            )
    else:
        typer.echo("No kegs configured.")

    typer.echo()
    echo_heading("Sensors")
    sensors = payload.get("sensors") or []
    if not sensors:
        typer.echo("No sensors configured.")
        return
    for sensor in sensors:
        reading = sensor.get("reading")
        if reading:
            detail = (
                f"{reading.get('temperature'):.1f} C, {reading.get('humidity'):.1f} % "
                f"(retries {reading.get('retries')}, at {reading.get('observed_at')})"
            )
        else:
            detail = "no reading"
        typer.echo(f"  - {sensor.get('model')} pin {sensor.get('pin')} [{sensor.get('state')}]: {detail}")


def render_pours(pours: List[Dict[str, Any]]) -> None:
    echo_heading("Pours")
    if not pours:
        typer.echo("No pours recorded.")
        return
    for pour in pours:
        typer.echo(
            f"  - pin {pour.get('keg_pin')}: {_fmt_volume(pour.get('volume'))} "
            f"from {pour.get('start_time')} to {pour.get('end_time')}"
        )


def render_calibration(payload: Dict[str, Any]) -> None:
    echo_heading("Calibration")
    echo_key_values(
        [
            ("pin", payload.get("pin")),
            ("previous_constant", payload.get("previous_constant")),
            ("flow_constant", payload.get("flow_constant")),
            ("applied", payload.get("applied")),
        ]
    )
