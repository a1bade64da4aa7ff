"""
Harrier Faults - the structured exception model.

Every failure Harrier raises on purpose is a Fault: an exception carrying a
stable code, a domain, a severity and the HTTP status the error handler
renders it with.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class Severity(str, Enum):
    """How bad a fault is; FATAL faults abort startup."""
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"


class FaultDomain(str, Enum):
    """Subsystem a fault originates from."""
    CONFIG = "config"          # route table / application misconfiguration
    DI = "di"
    ROUTING = "routing"
    FLOW = "flow"              # handler execution
    VALIDATION = "validation"
    SECURITY = "security"
    SYSTEM = "system"

    def __str__(self) -> str:
        return self.value


DEFAULT_SEVERITY = {
    FaultDomain.CONFIG: Severity.FATAL,
    FaultDomain.DI: Severity.ERROR,
    FaultDomain.ROUTING: Severity.INFO,
    FaultDomain.FLOW: Severity.ERROR,
    FaultDomain.VALIDATION: Severity.INFO,
    FaultDomain.SECURITY: Severity.WARN,
    FaultDomain.SYSTEM: Severity.FATAL,
}


class Fault(Exception):
    """
    Base class for Harrier faults.

    Subclasses usually fix code/domain/status and build the message from
    their own constructor arguments.

    Attributes:
        code: Machine-readable identifier, e.g. "VALIDATION_FAILED"
        message: Human-readable description
        domain: Originating subsystem
        severity: Defaults per domain (see DEFAULT_SEVERITY)
        status: HTTP status used by the error handler (class default 500)
        public: Whether the message may be shown to clients outside debug mode
        metadata: Extra context, rendered in debug mode only

    Example::

        raise Fault("ITEM_LOCKED", "Item 42 is locked", domain=FaultDomain.FLOW,
                    status=409, public=True)
    """

    status: int = 500

    def __init__(
        self,
        code: str,
        message: str,
        *,
        domain: FaultDomain,
        severity: Optional[Severity] = None,
        status: Optional[int] = None,
        public: bool = False,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.domain = FaultDomain(domain)
        self.severity = severity or DEFAULT_SEVERITY.get(self.domain, Severity.ERROR)
        if status is not None:
            self.status = status
        self.public = public
        self.metadata = dict(metadata or {})

    @property
    def is_fatal(self) -> bool:
        return self.severity is Severity.FATAL

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "domain": self.domain.value,
            "severity": self.severity.value,
            "status": self.status,
            "metadata": self.metadata,
        }

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code!r}, status={self.status}, domain={self.domain.value})"
