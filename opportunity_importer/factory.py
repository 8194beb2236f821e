"""Factory helpers for constructing collaborators from configuration."""
from __future__ import annotations

import importlib
from typing import Any, Dict, Mapping, Optional

from .config import ConfigurationError
from .providers.base import OutreachProvider, RecordStore
from .providers.sample import InMemoryRecordStore, LoopbackOutreachProvider


def _load_class(path: str):
    module_name, _, attr = path.rpartition(".")
    if not module_name:
        raise ConfigurationError(f"Invalid class path '{path}'")
    module = importlib.import_module(module_name)
    try:
        return getattr(module, attr)
    except AttributeError as exc:
        raise ConfigurationError(f"Module '{module_name}' does not define '{attr}'") from exc


def _instantiate(section: Mapping[str, Any], key: str, **extra: Any):
    class_path = section.get("class")
    if not class_path:
        raise ConfigurationError(f"'{key}' configuration missing required 'class' field")
    options: Dict[str, Any] = dict(section.get("options", {}))
    options.update(extra)
    return _load_class(class_path)(**options)


def build_record_store(config: Mapping[str, Any]) -> RecordStore:
    """Instantiate the record store named in the configuration (in-memory by default)."""

    section = config.get("record_store")
    if not section:
        return InMemoryRecordStore()
    return _instantiate(section, "record_store")


def build_outreach_provider(config: Mapping[str, Any], record_store: Optional[RecordStore] = None) -> OutreachProvider:
    """Instantiate the outreach provider named in the configuration.

    Without a configured provider a :class:`LoopbackOutreachProvider` is built;
    it reads opportunity details from ``record_store`` when that is the
    in-memory store.
    """

    section = config.get("outreach_provider")
    if not section:
        store = record_store if isinstance(record_store, InMemoryRecordStore) else None
        return LoopbackOutreachProvider(store)
    extra = {"record_store": record_store} if section.get("pass_record_store") else {}
    return _instantiate(section, "outreach_provider", **extra)
