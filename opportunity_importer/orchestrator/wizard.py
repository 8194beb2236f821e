"""State machine driving the Upload → Review → Processing → Results import flow.

Only :class:`ImportWizard` mutates its :class:`WizardSession`. Background work
(import and outreach hand-off) runs on an executor thread and reports back by
posting events to ``event_queue``; the session is updated when the owner
calls :meth:`ImportWizard.poll_events`. Events from a run that was closed are
dropped, so a late progress report can never touch a fresh session.
"""
from __future__ import annotations

import logging
import queue
import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple

from ..config import ImporterSettings
from ..ingestion.loaders import FileFormatError, WorkbookSource, read_opportunity_rows
from ..models import (
    ImportResults,
    Notice,
    OutreachBatch,
    OutreachResult,
    OutreachSummary,
    Pipeline,
    ProcessingStatus,
    ValidatedRecord,
    WizardStep,
)
from ..providers.base import OutreachProvider, RecordStore
from ..validation import validate_records
from .importer import ImportExecutor
from .outreach import DispatchError, OutreachDispatcher
from .results import BatchResultStore, ResultFetchError, summarize

LOGGER = logging.getLogger(__name__)

Event = Tuple[int, str, Any]


@dataclass
class WizardSession:
    """Everything the wizard screens render; reset whenever the wizard closes."""

    step: WizardStep = WizardStep.UPLOAD
    uploaded_records: Tuple[ValidatedRecord, ...] = ()
    selected_stage_id: Optional[str] = None
    file_error: Optional[str] = None
    processing_started: bool = False
    processing_status: ProcessingStatus = field(default_factory=ProcessingStatus)
    import_results: ImportResults = field(default_factory=ImportResults)
    outreach_batch_id: Optional[str] = None
    outreach_error: Optional[str] = None
    processing_error: Optional[str] = None
    outreach_results: List[OutreachResult] = field(default_factory=list)
    result_fetch_error: Optional[str] = None
    notices: List[Notice] = field(default_factory=list)

    @property
    def valid_records(self) -> List[ValidatedRecord]:
        return [record for record in self.uploaded_records if record.is_valid]

    @property
    def invalid_records(self) -> List[ValidatedRecord]:
        return [record for record in self.uploaded_records if not record.is_valid]

    @property
    def valid_count(self) -> int:
        return len(self.valid_records)

    @property
    def invalid_count(self) -> int:
        return len(self.uploaded_records) - self.valid_count


class _ProcessingTicket:
    """Hand-off between one processing run and the wizard that started it.

    Exactly one side ends up owning the batch id: if the wizard closes first,
    the worker discards the batch itself; otherwise :meth:`cancel` hands the
    registered batch id to the closing wizard.
    """

    def __init__(self, generation: int) -> None:
        self.generation = generation
        self.cancel_event = threading.Event()
        self._lock = threading.Lock()
        self._batch_id: Optional[str] = None

    def claim_batch(self, batch_id: str) -> bool:
        with self._lock:
            if self.cancel_event.is_set():
                return False
            self._batch_id = batch_id
            return True

    def cancel(self) -> Optional[str]:
        with self._lock:
            self.cancel_event.set()
            return self._batch_id


class ImportWizard:
    """Bulk opportunity import wizard for a single pipeline."""

    def __init__(
        self,
        pipeline: Pipeline,
        record_store: RecordStore,
        outreach_provider: OutreachProvider,
        *,
        settings: Optional[ImporterSettings] = None,
        executor: Optional[Executor] = None,
        clock: Callable[[], float] = time.monotonic,
        on_success: Optional[Callable[[], None]] = None,
    ) -> None:
        self.pipeline = pipeline
        self.settings = settings or ImporterSettings()
        timeout = self.settings.call_timeout_seconds
        self._importer = ImportExecutor(record_store, pipeline, call_timeout=timeout)
        self._dispatcher = OutreachDispatcher(outreach_provider, call_timeout=timeout)
        self.result_store = BatchResultStore(outreach_provider, call_timeout=timeout)
        self._owns_executor = executor is None
        self._executor: Executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="import-wizard")
        self._clock = clock
        self._on_success = on_success
        self.event_queue: "queue.Queue[Event]" = queue.Queue()
        self._generation = 0
        self._ticket: Optional[_ProcessingTicket] = None
        self._results_due_at: Optional[float] = None
        self.session = WizardSession()

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------
    @property
    def can_go_previous(self) -> bool:
        step = self.session.step
        if step == WizardStep.REVIEW:
            return not self.session.processing_started
        return step == WizardStep.RESULTS

    @property
    def can_go_next(self) -> bool:
        session = self.session
        return (
            session.step == WizardStep.REVIEW
            and session.selected_stage_id is not None
            and session.valid_count > 0
            and not session.processing_started
        )

    def go_previous(self) -> WizardStep:
        if not self.can_go_previous:
            return self.session.step
        if self.session.step == WizardStep.REVIEW:
            self.session.step = WizardStep.UPLOAD
        else:
            self.session.step = WizardStep.REVIEW
        return self.session.step

    def go_next(self) -> Optional[Future]:
        if self.session.step == WizardStep.REVIEW:
            return self.start_processing()
        return None

    # ------------------------------------------------------------------
    # Upload & review
    # ------------------------------------------------------------------
    def upload_file(self, source: WorkbookSource) -> bool:
        """Read and validate an uploaded workbook; on success move to the review step."""

        session = self.session
        if session.step != WizardStep.UPLOAD:
            LOGGER.warning("Ignoring upload while the wizard is at step %s", session.step.name)
            return False

        session.file_error = None
        try:
            rows = read_opportunity_rows(source)
        except FileFormatError as exc:
            session.file_error = exc.message
            self._notify(exc.title, exc.description, error=True)
            return False

        session.uploaded_records = tuple(validate_records(rows))
        session.step = WizardStep.REVIEW
        if session.selected_stage_id is None and self.pipeline.stages:
            session.selected_stage_id = self.pipeline.stages[0].id

        self._notify(
            "File Uploaded Successfully!",
            f"Processed {len(session.uploaded_records)} rows. "
            f"{session.valid_count} valid, {session.invalid_count} need fixing.",
        )
        return True

    def select_stage(self, stage_id: str) -> bool:
        if self.pipeline.find_stage(stage_id) is None:
            raise ValueError(f"Unknown stage '{stage_id}' for pipeline {self.pipeline.id}")
        if self.session.processing_started:
            LOGGER.warning("Stage cannot change once processing has started")
            return False
        self.session.selected_stage_id = stage_id
        return True

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------
    def start_processing(self) -> Optional[Future]:
        """Import the valid records and start outreach in the background.

        Returns the future of the background run, or ``None`` when the guard
        rejects the request (wrong step, no stage, nothing valid, or a run was
        already started).
        """

        session = self.session
        if session.processing_started:
            LOGGER.debug("Processing already started - ignoring duplicate request")
            return None
        if session.step != WizardStep.REVIEW:
            return None
        if session.selected_stage_id is None:
            self._notify("Stage Required", "Please select a stage to import opportunities to.", error=True)
            return None
        valid = session.valid_records
        if not valid:
            self._notify("Nothing To Import", "Fix the invalid rows and upload the file again.", error=True)
            return None

        LOGGER.info("Starting import and outreach process for %s opportunities", len(valid))
        session.processing_started = True
        session.step = WizardStep.PROCESSING
        session.processing_status = ProcessingStatus(total=len(valid))

        self._generation += 1
        ticket = _ProcessingTicket(self._generation)
        self._ticket = ticket
        return self._executor.submit(
            self._run_processing,
            ticket,
            tuple(valid),
            session.selected_stage_id,
            session.invalid_count,
        )

    def poll_events(self) -> int:
        """Apply queued background events to the session and fire due transitions."""

        handled = 0
        while True:
            try:
                generation, kind, payload = self.event_queue.get_nowait()
            except queue.Empty:
                break
            if self._ticket is None or generation != self._ticket.generation:
                LOGGER.debug("Dropping %s event from a closed run", kind)
                continue
            self._handle_event(kind, payload)
            handled += 1

        if self._results_due_at is not None and self._clock() >= self._results_due_at:
            self._results_due_at = None
            self._show_results()
        return handled

    def wait_for_results(self, future: Future, *, timeout: Optional[float] = None, poll_interval: float = 0.05) -> WizardStep:
        """Block until the background run finished and the wizard left the processing step."""

        future.result(timeout=timeout)
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            self.poll_events()
            if self.session.step != WizardStep.PROCESSING:
                return self.session.step
            if deadline is not None and time.monotonic() >= deadline:
                return self.session.step
            time.sleep(poll_interval)

    def _run_processing(
        self,
        ticket: _ProcessingTicket,
        records: Tuple[ValidatedRecord, ...],
        stage_id: str,
        skipped: int,
    ) -> None:
        def post(kind: str, payload: Any = None) -> None:
            self.event_queue.put((ticket.generation, kind, payload))

        try:
            results = self._importer.run_import(
                records,
                stage_id,
                skipped=skipped,
                progress_callback=lambda status: post("progress", status),
                cancel_event=ticket.cancel_event,
            )
            post("import_finished", results)
            if ticket.cancel_event.is_set():
                LOGGER.info("Wizard closed during import - outreach not started")
                return

            try:
                batch = self._dispatcher.dispatch(
                    results.opportunity_ids,
                    self.pipeline.id,
                    self.settings.outreach_delay_ms,
                )
            except DispatchError as exc:
                LOGGER.error("Outreach failed: %s", exc)
                post("dispatch_failed", str(exc))
                return

            if batch is None:
                post("no_outreach")
                return
            if not ticket.claim_batch(batch.batch_id):
                LOGGER.info("Wizard closed while outreach was starting - discarding batch %s", batch.batch_id)
                self.result_store.cleanup(batch.batch_id)
                return
            post("dispatched", batch)
        except Exception as exc:
            LOGGER.exception("Error during processing")
            post("error", str(exc))

    def _handle_event(self, kind: str, payload: Any) -> None:
        session = self.session
        if kind == "progress":
            session.processing_status = payload
        elif kind == "import_finished":
            results: ImportResults = payload
            session.import_results = results
            if results.successful > 0:
                self._notify("Import Complete", f"Successfully imported {results.successful} opportunities.")
            if results.aborted:
                detail = session.processing_status.message or "The import stopped before every row was processed."
                self._notify("Import Stopped", detail, error=True)
        elif kind == "dispatched":
            batch: OutreachBatch = payload
            session.outreach_batch_id = batch.batch_id
            self._notify(
                "Processing Started",
                f"Importing {len(batch.opportunity_ids)} opportunities and sending messages",
            )
            self._show_results()
        elif kind == "dispatch_failed":
            session.outreach_error = payload
            self._notify(DispatchError.title, "Failed to start outreach messages", error=True)
            self._schedule_results()
        elif kind == "no_outreach":
            self._schedule_results()
        elif kind == "error":
            session.processing_error = payload
            self._notify("Processing Error", "Failed to complete processing", error=True)
            self._show_results()
        else:  # pragma: no cover - programming error
            LOGGER.warning("Unknown wizard event %s", kind)

    def _schedule_results(self) -> None:
        self._results_due_at = self._clock() + self.settings.results_grace_seconds

    def _show_results(self) -> None:
        if self.session.step == WizardStep.PROCESSING:
            self.session.step = WizardStep.RESULTS

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------
    @property
    def outreach_summary(self) -> OutreachSummary:
        return summarize(self.session.outreach_results)

    def refresh_outreach_results(self) -> Optional[OutreachSummary]:
        """Fetch the latest delivery outcomes; a failure only sets the error banner."""

        batch_id = self.session.outreach_batch_id
        if not batch_id:
            return None
        try:
            results = self.result_store.fetch_results(batch_id)
        except ResultFetchError as exc:
            self.session.result_fetch_error = str(exc)
            return None
        self.session.outreach_results = results
        self.session.result_fetch_error = None
        return summarize(results)

    def dismiss_result_error(self) -> None:
        self.session.result_fetch_error = None

    def export_outreach_results(self) -> Tuple[str, bytes]:
        """Return the CSV file name and content for the fetched outreach results."""

        batch_id = self.session.outreach_batch_id
        if not batch_id:
            raise ValueError("No outreach batch to export")
        return self.result_store.export_filename(batch_id), self.result_store.export_csv(self.session.outreach_results)

    # ------------------------------------------------------------------
    # Close
    # ------------------------------------------------------------------
    def close(self) -> Optional[Future]:
        """Stop the current run, schedule batch cleanup and reset the session.

        Cleanup runs in the background; the returned future (``None`` when no
        batch exists) completes once the provider was asked to delete it.
        """

        ticket, self._ticket = self._ticket, None
        self._results_due_at = None
        batch_id = ticket.cancel() if ticket else None
        had_processing = self.session.processing_started

        while True:
            try:
                self.event_queue.get_nowait()
            except queue.Empty:
                break

        self.session = WizardSession()
        LOGGER.debug("Import wizard closed")

        if had_processing and self._on_success:
            self._on_success()

        if batch_id:
            LOGGER.info("Triggering cleanup for outreach batch %s", batch_id)
            return self._executor.submit(self.result_store.cleanup, batch_id)
        return None

    def cancel(self) -> Optional[Future]:
        return self.close()

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
        self._importer.close()
        self._dispatcher.close()
        self.result_store.close()

    # ------------------------------------------------------------------
    def _notify(self, title: str, description: str, *, error: bool = False) -> None:
        notice = Notice(title=title, description=description, variant="destructive" if error else "default")
        self.session.notices.append(notice)
        if error:
            LOGGER.warning("%s: %s", title, description)
        else:
            LOGGER.info("%s: %s", title, description)


__all__ = ["ImportWizard", "WizardSession"]
