"""Smoke tests for the CLI entry point."""
from __future__ import annotations

import json
import logging

import pytest

from opportunity_importer import __main__
from opportunity_importer.cli import main


def _write_config(tmp_path, *, delay_ms: int = 0) -> str:
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps(
            {
                "pipeline": {
                    "id": "pipe-1",
                    "pipeline_name": "Sales",
                    "connector_account_id": "acc-1",
                    "stages": [{"id": "stage-new", "stage_name": "New Lead"}],
                },
                "settings": {
                    "outreach_delay_ms": delay_ms,
                    "results_grace_seconds": 0,
                    "poll_interval_seconds": 0.01,
                    "max_wait_seconds": 5,
                },
            }
        ),
        encoding="utf-8",
    )
    return str(config_path)


def test_cli_template_then_run_exports_outreach_results(tmp_path) -> None:
    template_path = tmp_path / "template.xlsx"
    assert main(["template", str(template_path)]) == 0
    assert template_path.exists()

    output_dir = tmp_path / "exports"
    output_dir.mkdir()

    exit_code = main(["run", str(template_path), str(output_dir), "--config", _write_config(tmp_path)])

    assert exit_code == 0
    exports = list(output_dir.glob("outreach_results_*.csv"))
    assert len(exports) == 1
    lines = exports[0].read_text(encoding="utf-8").splitlines()
    assert lines[0] == "response_status,opportunity_name,client_name,client_phone,timestamp"
    assert len(lines) == 3
    assert all(line.startswith("success,") for line in lines[1:])
    assert "Ahmed Tawfeeq - Opportunity" in lines[1]


def test_cli_run_logs_the_delivery_estimate(tmp_path, caplog) -> None:
    template_path = tmp_path / "template.xlsx"
    main(["template", str(template_path)])

    with caplog.at_level(logging.INFO):
        exit_code = main(
            ["run", str(template_path), str(tmp_path / "out.csv"), "--config", _write_config(tmp_path, delay_ms=30)]
        )

    assert exit_code == 0
    assert "2 messages, about 1 min at 2000.0/min" in caplog.text


def test_cli_run_reports_unreadable_uploads(tmp_path) -> None:
    upload = tmp_path / "upload.xlsx"
    upload.write_bytes(b"not a workbook")

    exit_code = main(["run", str(upload), str(tmp_path / "out.csv"), "--config", _write_config(tmp_path)])

    assert exit_code == 1


def test_cli_run_requires_configuration(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("OPPORTUNITY_IMPORTER_CONFIG", raising=False)

    assert main(["run", str(tmp_path / "upload.xlsx"), str(tmp_path / "out.csv")]) == 2


def test_cli_run_uses_configuration_from_environment(tmp_path, monkeypatch) -> None:
    template_path = tmp_path / "template.xlsx"
    main(["template", str(template_path)])
    monkeypatch.setenv("OPPORTUNITY_IMPORTER_CONFIG", _write_config(tmp_path))
    output_path = tmp_path / "results.csv"

    exit_code = __main__.main(["run", str(template_path), str(output_path), "--stage", "stage-new"])

    assert exit_code == 0
    assert output_path.read_text(encoding="utf-8").startswith("response_status,")


def test_cli_run_rejects_unknown_stage(tmp_path) -> None:
    template_path = tmp_path / "template.xlsx"
    main(["template", str(template_path)])

    exit_code = main(
        ["run", str(template_path), str(tmp_path / "out.csv"), "--config", _write_config(tmp_path), "--stage", "nope"]
    )

    assert exit_code == 2


def test_module_entry_point_without_arguments_shows_help(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = __main__.main([])

    captured = capsys.readouterr()
    assert "python -m opportunity_importer" in captured.out
    assert exit_code == 2
