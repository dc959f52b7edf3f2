"""Shared utilities for the portal package."""

from portal.utils.audit import AuditEvent, DetailValue, log_audit_event

__all__ = ["AuditEvent", "DetailValue", "log_audit_event"]
