"""Tests for the inspection-query command line."""

from __future__ import annotations

import io
import json
from pathlib import Path

import httpx
import pytest

from inspection_metrics.vm import cli
from inspection_metrics.vm.client import VictoriaMetricsClient
from inspection_metrics.vm.config import InspectionConfig


@pytest.fixture()
def config_path(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        """
        victoriametrics:
          endpoint: http://vm:8428
        http:
          retry:
            max_retries: 0
            base_delay: 0s
        host_filter:
          business_groups: [prod]
        """,
        encoding="utf-8",
    )
    return path


def _patch_transport(
    monkeypatch: pytest.MonkeyPatch, handler: httpx.MockTransport
) -> None:
    class MockedClient(VictoriaMetricsClient):
        @classmethod
        def from_config(
            cls, config: InspectionConfig, *, client: httpx.Client | None = None
        ) -> VictoriaMetricsClient:
            mocked = httpx.Client(transport=handler, base_url=config.victoriametrics.endpoint)
            return super().from_config(config, client=mocked)

    monkeypatch.setattr(cli, "VictoriaMetricsClient", MockedClient)


def test_show_query_uses_configured_filter(config_path: Path) -> None:
    out = io.StringIO()

    code = cli.main(["--config", str(config_path), "--show-query", "cpu_usage_active"], out=out)

    assert code == 0
    assert out.getvalue().strip() == 'cpu_usage_active{busigroup=~"prod"}'


def test_command_line_filter_replaces_config(config_path: Path) -> None:
    out = io.StringIO()

    cli.main(
        [
            "--config",
            str(config_path),
            "--tag",
            "env=prod",
            "--show-query",
            "disk_used_percent",
        ],
        out=out,
    )

    assert out.getvalue().strip() == 'disk_used_percent{env="prod"}'


def test_by_ident_prints_grouped_json(
    config_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        payload = {
            "status": "success",
            "data": {
                "resultType": "vector",
                "result": [
                    {"metric": {"ident": "h1"}, "value": [1, "1"]},
                    {"metric": {"ident": "h1"}, "value": [1, "2"]},
                ],
            },
        }
        return httpx.Response(200, json=payload)

    _patch_transport(monkeypatch, httpx.MockTransport(handler))
    out = io.StringIO()

    code = cli.main(["--config", str(config_path), "--by-ident", "up"], out=out)

    assert code == 0
    assert json.loads(out.getvalue()) == {
        "h1": {"identity": "h1", "value": 2.0, "labels": {"ident": "h1"}}
    }


def test_query_failure_returns_exit_code(
    config_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"status": "error", "error": "bad"})

    _patch_transport(monkeypatch, httpx.MockTransport(handler))
    out = io.StringIO()

    assert cli.main(["--config", str(config_path), "up"], out=out) == 1
    assert out.getvalue() == ""


def test_invalid_tag_is_rejected(config_path: Path) -> None:
    with pytest.raises(SystemExit):
        cli.main(["--config", str(config_path), "--tag", "novalue", "up"])


def test_redirect_loop_returns_exit_code(
    config_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.TooManyRedirects("redirect loop", request=request)

    _patch_transport(monkeypatch, httpx.MockTransport(handler))

    assert cli.main(["--config", str(config_path), "up"], out=io.StringIO()) == 1
