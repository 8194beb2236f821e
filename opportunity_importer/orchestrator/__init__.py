"""Import, outreach hand-off, result tracking and the wizard that sequences them."""

from .importer import CreationError, ImportExecutor
from .outreach import DispatchError, OutreachDispatcher
from .results import BatchResultStore, ResultFetchError
from .wizard import ImportWizard, WizardSession

__all__ = [
    "BatchResultStore",
    "CreationError",
    "DispatchError",
    "ImportExecutor",
    "ImportWizard",
    "OutreachDispatcher",
    "ResultFetchError",
    "WizardSession",
]
