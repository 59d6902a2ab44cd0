"""
Logging configuration for the canary ledger.

Provides structured JSON logging and an audit logger for ledger, canary and
security events. Credentials never reach the log; only their hashes or
masked forms do.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Dict, List, Optional

from .hashing import mask_sensitive

# Context variable for request ID tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs one JSON object per line, suitable for log aggregation.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class AuditLogger:
    """
    Specialized logger for audit events.

    One method per ledger-relevant occurrence; integrity failures are
    routed through security_event so they can be alerted on separately from
    ordinary validation rejections.
    """

    def __init__(self, name: str = "canaryledger.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        """Internal logging method with extra fields."""
        if not self._logger.isEnabledFor(level):
            return

        extra = sanitize_for_logging({
            "event_type": event_type,
            "request_id": request_id_var.get(),
            **kwargs
        })

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def message_stored(
        self,
        message_id: int,
        sender: str,
        recipient: str,
        security_level: int,
        requested_level: int,
        quantum_secure: bool
    ) -> None:
        self._log(
            logging.INFO,
            "MESSAGE_STORED",
            message_id=message_id,
            sender=sender,
            recipient=recipient,
            security_level=security_level,
            requested_level=requested_level,
            quantum_secure=quantum_secure,
            message=f"Message {message_id} stored at level {security_level}"
        )

    def message_authenticated(self, message_id: int, caller: str) -> None:
        self._log(
            logging.INFO,
            "MESSAGE_AUTHENTICATED",
            message_id=message_id,
            caller=caller,
            message=f"Message {message_id} authenticated"
        )

    def authentication_rejected(self, message_id: Any, caller: Optional[str], reason: str) -> None:
        self._log(
            logging.WARNING,
            "AUTHENTICATION_REJECTED",
            message_id=message_id,
            caller=caller,
            reason=reason,
            message=f"Authentication rejected: {reason}"
        )

    def store_rejected(self, sender: Optional[str], reason: str) -> None:
        self._log(
            logging.WARNING,
            "STORE_REJECTED",
            sender=sender,
            reason=reason,
            message=f"Store rejected: {reason}"
        )

    def security_escalation(self, message_id: int, previous_level: int, new_level: int) -> None:
        self._log(
            logging.WARNING,
            "SECURITY_LEVEL_UPGRADED",
            message_id=message_id,
            previous_level=previous_level,
            new_level=new_level,
            message=f"Message {message_id} escalated {previous_level} -> {new_level}"
        )

    def canary_updated(self, threat_level: int, threat_detected: bool, last_checked: int) -> None:
        self._log(
            logging.INFO,
            "CANARY_UPDATED",
            threat_level=threat_level,
            threat_detected=threat_detected,
            last_checked=last_checked,
            message=f"Canary updated to threat level {threat_level}"
        )

    def canary_update_rejected(self, reason: str, retry_after: Optional[int] = None) -> None:
        self._log(
            logging.WARNING,
            "CANARY_UPDATE_REJECTED",
            reason=reason,
            retry_after=retry_after,
            message=f"Canary update rejected: {reason}"
        )

    def threat_detected(self, threat_level: int, timestamp: int) -> None:
        self._log(
            logging.CRITICAL,
            "THREAT_DETECTED",
            threat_level=threat_level,
            detected_at=timestamp,
            message=f"Quantum threat detected at level {threat_level}"
        )

    def security_event(
        self,
        event: str,
        severity: str = "medium",
        **details
    ) -> None:
        """Log a security-relevant event."""
        level = {
            "low": logging.INFO,
            "medium": logging.WARNING,
            "high": logging.ERROR,
            "critical": logging.CRITICAL
        }.get(severity, logging.WARNING)

        self._log(
            level,
            "SECURITY_EVENT",
            security_event=event,
            severity=severity,
            **details,
            message=f"Security event: {event}"
        )

    def rate_limit_exceeded(self, client_id: str, endpoint: str) -> None:
        self._log(
            logging.WARNING,
            "RATE_LIMIT_EXCEEDED",
            client_id=client_id,
            endpoint=endpoint,
            message=f"Rate limit exceeded for {client_id} on {endpoint}"
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting (recommended for production)
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set the request ID for the current context.

    Args:
        request_id: Request ID to set, or None to generate one

    Returns:
        The request ID that was set
    """
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


def sanitize_for_logging(data: Dict[str, Any], sensitive_fields: List[str] = None) -> Dict[str, Any]:
    """
    Sanitize data for logging by masking sensitive fields.

    Args:
        data: The data to sanitize
        sensitive_fields: List of field names to mask

    Returns:
        Sanitized copy of the data
    """
    if sensitive_fields is None:
        sensitive_fields = ["credential", "auth_credential", "oracle_credential", "private_key_b64"]

    result = {}
    for key, value in data.items():
        if key in sensitive_fields:
            if isinstance(value, (str, bytes)) and len(value) > 8:
                result[key] = mask_sensitive(value)
            else:
                result[key] = "[REDACTED]"
        elif isinstance(value, dict):
            result[key] = sanitize_for_logging(value, sensitive_fields)
        else:
            result[key] = value

    return result


# Global audit logger instance
audit_log = AuditLogger()
