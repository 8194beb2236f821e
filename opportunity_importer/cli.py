"""Command line interface for running the bulk opportunity import wizard."""
from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from .config import CONFIG_ENV_VAR, ConfigurationError, load_configuration, pipeline_from_config, settings_from_config
from .factory import build_outreach_provider, build_record_store
from .ingestion.exporters import TEMPLATE_FILENAME, write_import_template
from .orchestrator import ImportWizard, ResultFetchError
from .orchestrator.outreach import estimate_duration_minutes, messages_per_minute


def build_parser(prog: str | None = None) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=prog, description="Bulk import opportunities and send outreach messages")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (e.g. DEBUG, INFO, WARNING)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    template = subparsers.add_parser("template", help="Write the example import workbook")
    template.add_argument("output", nargs="?", default=TEMPLATE_FILENAME, help="Where to write the .xlsx template")

    run = subparsers.add_parser("run", help="Import a workbook and send outreach for the created opportunities")
    run.add_argument("input", help="Path to the .xlsx workbook with an 'Opportunities' sheet")
    run.add_argument("output", help="CSV file (or directory) for the outreach results")
    run.add_argument(
        "--config",
        default=None,
        help=f"Path to the configuration file (YAML or JSON); defaults to ${CONFIG_ENV_VAR}",
    )
    run.add_argument("--stage", default=None, help="Stage id to import into (defaults to the first stage)")
    run.add_argument(
        "--no-wait",
        action="store_true",
        help="Export the results as soon as the batch is accepted instead of waiting for delivery",
    )
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    if args.command == "template":
        destination = write_import_template(args.output)
        logging.info("Template written to %s", destination.resolve())
        return 0
    return _run(args)


def _run(args: argparse.Namespace) -> int:
    config_path = args.config or os.environ.get(CONFIG_ENV_VAR)
    if not config_path:
        logging.error("No configuration given - pass --config or set %s", CONFIG_ENV_VAR)
        return 2
    try:
        config = load_configuration(config_path)
        settings = settings_from_config(config)
        pipeline = pipeline_from_config(config)
    except ConfigurationError as exc:
        logging.error("%s", exc)
        return 2

    record_store = build_record_store(config)
    provider = build_outreach_provider(config, record_store)
    wizard = ImportWizard(pipeline, record_store, provider, settings=settings)
    try:
        return _drive_wizard(wizard, args)
    finally:
        cleanup = wizard.close()
        if cleanup is not None:
            cleanup.result()
        wizard.shutdown()


def _drive_wizard(wizard: ImportWizard, args: argparse.Namespace) -> int:
    if not wizard.upload_file(args.input):
        logging.error("%s", wizard.session.file_error)
        return 1

    session = wizard.session
    logging.info("%s Valid / %s Invalid", session.valid_count, session.invalid_count)
    for index, record in enumerate(session.uploaded_records, start=1):
        if not record.is_valid:
            logging.warning("Row %s (%s): %s", index, record.client_name or "-", "; ".join(record.errors))

    if args.stage:
        try:
            wizard.select_stage(args.stage)
        except ValueError as exc:
            logging.error("%s", exc)
            return 2
    future = wizard.go_next()
    if future is None:
        for notice in session.notices:
            if notice.is_error:
                logging.error("%s: %s", notice.title, notice.description)
        return 1

    wizard.wait_for_results(future)
    session = wizard.session
    results = session.import_results
    logging.info(
        "Imported %s of %s (%s failed, %s skipped)",
        results.successful,
        results.total,
        results.failed,
        results.skipped,
    )
    if session.outreach_error:
        logging.error("Outreach failed: %s", session.outreach_error)
        return 0
    if not session.outreach_batch_id:
        logging.info("No outreach needed")
        return 0

    delay_ms = wizard.settings.outreach_delay_ms
    logging.info(
        "Outreach batch %s: %s messages, about %s min at %.1f/min",
        session.outreach_batch_id,
        len(results.opportunity_ids),
        estimate_duration_minutes(len(results.opportunity_ids), delay_ms),
        messages_per_minute(delay_ms),
    )

    if not args.no_wait:
        try:
            wizard.result_store.wait_for_completion(
                session.outreach_batch_id,
                poll_interval=wizard.settings.poll_interval_seconds,
                max_wait=wizard.settings.max_wait_seconds,
            )
        except ResultFetchError as exc:
            logging.error("%s", exc)
            return 0

    summary = wizard.refresh_outreach_results()
    if summary is None:
        logging.error("%s", wizard.session.result_fetch_error)
        return 0
    logging.info(
        "Outreach: %s successful, %s failed, %s pending",
        len(summary.successful),
        len(summary.failed),
        summary.pending_count,
    )

    filename, data = wizard.export_outreach_results()
    destination = Path(args.output)
    if destination.is_dir():
        destination = destination / filename
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_bytes(data)
    logging.info("Outreach results written to %s", destination.resolve())
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
