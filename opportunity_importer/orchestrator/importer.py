"""Sequential creation of contacts and opportunities for validated rows."""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from ..models import COMPLETED, ERROR, PROCESSING, ImportResults, Pipeline, ProcessingStatus, ValidatedRecord
from ..providers.base import RecordStore
from ..rate_limit import CallGuard, CallTimeoutError

LOGGER = logging.getLogger(__name__)

WHATSAPP_SUFFIX = "@s.whatsapp.net"

ProgressCallback = Callable[[ProcessingStatus], None]


class CreationError(RuntimeError):
    """Raised when the record store rejects a contact or opportunity."""


def display_phone(phone: str) -> str:
    return phone.replace(WHATSAPP_SUFFIX, "")


def contact_fields(record: ValidatedRecord, pipeline: Pipeline) -> Dict[str, Any]:
    identifier = f"{record.phone}{WHATSAPP_SUFFIX}"
    return {
        "name": record.client_name,
        "email": record.email or None,
        "phone_number": record.phone,
        "identifier": identifier,
        "blocked": False,
        "connector_account_id": pipeline.connector_account_id,
    }


def opportunity_fields(record: ValidatedRecord, contact_id: str, stage_id: str, pipeline: Pipeline) -> Dict[str, Any]:
    return {
        "pipeline_id": pipeline.id,
        "stage_id": stage_id,
        "contact_id": contact_id,
        "opportunity_name": f"{record.client_name} - Opportunity",
        "client_name": record.client_name,
        "client_email": record.email or None,
        "client_phone_number": record.phone,
        "opportunity_notes": record.notes or None,
        "preferred_language": record.preferred_language,
        "preferred_dialect": record.preferred_dialect,
        "source": record.source or None,
        "status": "active",
    }


class ImportExecutor:
    """Creates one contact and one opportunity per record, strictly in input order.

    A failure on either creation only affects the current record. A contact
    whose opportunity could not be created is left in the store. A call that
    exceeds ``call_timeout`` stops the run: no further records are attempted
    and the remainder is counted as failed.
    """

    def __init__(
        self,
        record_store: RecordStore,
        pipeline: Pipeline,
        *,
        call_timeout: Optional[float] = None,
    ) -> None:
        self._record_store = record_store
        self._pipeline = pipeline
        self._guard = CallGuard(call_timeout, name="record-store")

    def run_import(
        self,
        records: Sequence[ValidatedRecord],
        stage_id: str,
        *,
        skipped: int = 0,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ImportResults:
        total = len(records)
        successful = 0
        failed = 0
        aborted = False
        message: Optional[str] = None
        opportunity_ids: List[str] = []
        status = ProcessingStatus(total=total)

        for index, record in enumerate(records, start=1):
            if cancel_event and cancel_event.is_set():
                LOGGER.info("Import cancelled before record %s of %s", index, total)
                failed += total - index + 1
                aborted = True
                message = "Import cancelled"
                break

            try:
                opportunity_ids.append(self._import_record(record, stage_id))
            except CreationError:
                LOGGER.exception("Error importing opportunity for %s", record.client_name)
                failed += 1
            except CallTimeoutError as exc:
                LOGGER.error("Import stopped at record %s of %s: %s", index, total, exc)
                failed += total - index + 1
                aborted = True
                message = str(exc)
            else:
                successful += 1

            status = ProcessingStatus(
                current=index,
                total=total,
                current_client=record.client_name,
                current_phone=display_phone(record.phone),
                status=PROCESSING,
            )
            if aborted:
                break
            if progress_callback:
                progress_callback(status)

        final_status = ProcessingStatus(
            current=status.current,
            total=total,
            current_client=status.current_client,
            current_phone=status.current_phone,
            status=ERROR if aborted else COMPLETED,
            message=message,
        )
        if progress_callback:
            progress_callback(final_status)

        results = ImportResults(
            successful=successful,
            failed=failed,
            skipped=skipped,
            total=total + skipped,
            opportunity_ids=tuple(opportunity_ids),
            aborted=aborted,
        )
        LOGGER.info(
            "Import finished: %s successful, %s failed, %s skipped",
            results.successful,
            results.failed,
            results.skipped,
        )
        return results

    # ------------------------------------------------------------------
    def _import_record(self, record: ValidatedRecord, stage_id: str) -> str:
        contact = self._create("contact", self._record_store.create_contact, contact_fields(record, self._pipeline))
        opportunity = self._create(
            "opportunity",
            self._record_store.create_opportunity,
            opportunity_fields(record, contact["id"], stage_id, self._pipeline),
        )
        LOGGER.debug("Created opportunity %s for %s", opportunity["id"], record.client_name)
        return str(opportunity["id"])

    def _create(
        self,
        kind: str,
        create: Callable[[Mapping[str, Any]], Mapping[str, Any]],
        fields: Mapping[str, Any],
    ) -> Mapping[str, Any]:
        try:
            created = self._guard.call(create, fields, label=f"Creating {kind}")
        except CallTimeoutError:
            raise
        except Exception as exc:
            raise CreationError(f"Failed to create {kind}: {exc}") from exc
        if not isinstance(created, Mapping) or not created.get("id"):
            raise CreationError(f"Record store returned no id for the new {kind}")
        return created

    def close(self) -> None:
        self._guard.close()


__all__ = [
    "CreationError",
    "ImportExecutor",
    "contact_fields",
    "display_phone",
    "opportunity_fields",
]
