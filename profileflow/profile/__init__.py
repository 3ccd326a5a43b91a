"""Profile update and migration workflows."""

from __future__ import annotations

from .inmemory import InMemoryLedger, InMemoryMediaStore
from .models import MediaFile, ProfileRecord, ProfileUpdate, has_list_data, list_data
from .ports import LedgerClient, MediaUploader, Receipt
from .workflows import (
    ProfileEditor,
    ProfileFormatGate,
    WalletSession,
    build_update_record,
    build_v2_record,
    create_migration_workflow,
    create_update_workflow,
)

__all__ = [
    "InMemoryLedger",
    "InMemoryMediaStore",
    "LedgerClient",
    "MediaFile",
    "MediaUploader",
    "ProfileEditor",
    "ProfileFormatGate",
    "ProfileRecord",
    "ProfileUpdate",
    "Receipt",
    "WalletSession",
    "build_update_record",
    "build_v2_record",
    "create_migration_workflow",
    "create_update_workflow",
    "has_list_data",
    "list_data",
]
