from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest
from typer.testing import CliRunner

from cli.app import app
from cli.config import DEFAULT_BASE_URL, load_config


class StubClient:
    def __init__(self, config) -> None:
        self.config = config
        self.calibrate_calls: List[tuple[int, Optional[float], Optional[float]]] = []
        self.refill_calls: List[tuple[int, Optional[str]]] = []
        self.pour_limits: List[Optional[int]] = []
        self.applied = True
        self.closed = False

    def get_state(self) -> Dict[str, Any]:
        return {
            "taken_at": "2024-01-01T00:00:00Z",
            "kegs": [
                {
                    "pin": 17,
                    "keg_type": "corny",
                    "contents": "IPA",
                    "flow_constant": 7.5,
                    "remaining_volume": 12.5,
                    "total_volume": 18.93,
                }
            ],
            "sensors": [
                {
                    "model": "dht22",
                    "pin": 4,
                    "state": "running",
                    "reading": {
                        "temperature": 3.5,
                        "humidity": 41.0,
                        "retries": 1,
                        "observed_at": "2024-01-01T00:00:00Z",
                    },
                }
            ],
        }

    def list_pours(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        self.pour_limits.append(limit)
        return [
            {
                "keg_pin": 17,
                "volume": 0.473,
                "start_time": "2024-01-01T18:00:00Z",
                "end_time": "2024-01-01T18:00:09Z",
            }
        ]

    def refill(self, pin: int, contents: Optional[str] = None) -> Dict[str, Any]:
        self.refill_calls.append((pin, contents))
        return {"pin": pin, "contents": contents or "IPA"}

    def calibrate(
        self, pin: int, constant: Optional[float] = None, coefficient: Optional[float] = None
    ) -> Dict[str, Any]:
        self.calibrate_calls.append((pin, constant, coefficient))
        return {
            "pin": pin,
            "previous_constant": 7.5,
            "flow_constant": 7.5 if not self.applied else (constant or 8.25),
            "applied": self.applied,
        }

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def stub(monkeypatch) -> StubClient:
    client = StubClient(config=None)

    def factory(config):
        client.config = config
        return client

    monkeypatch.setattr("cli.app.ApiClient", factory)
    return client


def test_state_command(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["state"])

    assert result.exit_code == 0
    assert "pin 17 [corny] IPA: 12.50 L of 18.93 L left" in result.stdout
    assert "dht22 pin 4 [running]: 3.5 C, 41.0 %" in result.stdout
    assert stub.closed is True


def test_pours_command_passes_limit(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["pours", "--limit", "5"])

    assert result.exit_code == 0
    assert stub.pour_limits == [5]
    assert "pin 17: 0.47 L" in result.stdout


def test_refill_command(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["refill", "17", "--contents", "Stout"])

    assert result.exit_code == 0
    assert stub.refill_calls == [(17, "Stout")]
    assert "Refilled pin 17 with Stout" in result.stdout


def test_calibrate_command_with_coefficient(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["calibrate", "17", "--coefficient", "1.1"])

    assert result.exit_code == 0
    assert stub.calibrate_calls == [(17, None, 1.1)]
    assert "flow_constant: 8.25" in result.stdout


def test_calibrate_command_reports_no_op(runner: CliRunner, stub: StubClient) -> None:
    stub.applied = False

    result = runner.invoke(app, ["calibrate", "17", "--coefficient", "1"])

    assert result.exit_code == 0
    assert "Flow constant unchanged." in result.stdout


def test_calibrate_command_requires_exactly_one_mode(runner: CliRunner, stub: StubClient) -> None:
    neither = runner.invoke(app, ["calibrate", "17"])
    both = runner.invoke(app, ["calibrate", "17", "--constant", "5", "--coefficient", "1.1"])

    assert neither.exit_code != 0
    assert both.exit_code != 0
    assert stub.calibrate_calls == []


def test_base_url_option_overrides_environment(
    runner: CliRunner, stub: StubClient, monkeypatch
) -> None:
    monkeypatch.setenv("KEGERATOR_API_URL", "http://kegerator.local:9000/")

    runner.invoke(app, ["state"])
    assert stub.config.base_url == "http://kegerator.local:9000"

    runner.invoke(app, ["--base-url", "http://other:8000", "state"])
    assert stub.config.base_url == "http://other:8000"


def test_load_config_falls_back_on_invalid_timeout(monkeypatch) -> None:
    monkeypatch.delenv("KEGERATOR_API_URL", raising=False)
    monkeypatch.setenv("KEGERATOR_API_TIMEOUT", "soon")

    config = load_config()

    assert config.base_url == DEFAULT_BASE_URL
    assert config.timeout == 10.0
