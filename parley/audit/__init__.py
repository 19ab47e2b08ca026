"""Append-only audit trail for moderation and message mutations."""

from parley.audit.audit_log import AuditEntry, AuditLogger

__all__ = ["AuditEntry", "AuditLogger"]
