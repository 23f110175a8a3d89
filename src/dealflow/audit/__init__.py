"""Audit trail: models, storage, logger, and CLI for conversation events."""

from dealflow.audit.cli import build_parser
from dealflow.audit.logger import AuditLogger
from dealflow.audit.models import AuditEntry, EventType
from dealflow.audit.store import (
    close_audit_db,
    init_audit_db,
    init_audit_table,
    insert_audit_entry,
    query_audit_trail,
)

__all__ = [
    "AuditEntry",
    "AuditLogger",
    "EventType",
    "build_parser",
    "close_audit_db",
    "init_audit_db",
    "init_audit_table",
    "insert_audit_entry",
    "query_audit_trail",
]
