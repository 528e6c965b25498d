from dataclasses import dataclass, field
from typing import Any, List, Optional

from .errors import FTPError, RemoteOperationError
from .parser import Reply


@dataclass
class OperationOutcome:
    """Result of one high-level operation, with every reply seen on the way."""
    operation: str
    success: bool = False
    payload: Any = None
    replies: List[Reply] = field(default_factory=list)
    error: Optional[FTPError] = None
    failed_step: Optional[str] = None
    description: str = ""

    @property
    def not_found(self) -> bool:
        """True when the server answered the failing step with 550."""
        return isinstance(self.error, RemoteOperationError) and self.error.code == 550

    @property
    def last_reply(self) -> Optional[Reply]:
        return self.replies[-1] if self.replies else None

    def fail(self, error: FTPError, description: str, step: Optional[str] = None) -> "OperationOutcome":
        self.success = False
        self.error = error
        self.description = description
        self.failed_step = step or getattr(error, 'verb', None)
        return self

    def succeed(self, payload: Any = None) -> "OperationOutcome":
        self.success = True
        self.payload = payload
        self.error = None
        return self

    def to_dict(self) -> dict:
        return {
            "operation": self.operation,
            "success": self.success,
            "payload": self.payload,
            "failed_step": self.failed_step,
            "description": self.description,
            "error": str(self.error) if self.error else None,
            "replies": [str(r) for r in self.replies],
        }

    def __bool__(self) -> bool:
        return self.success

    def __str__(self) -> str:
        if self.success:
            return f"{self.operation}: OK"
        step = f" at {self.failed_step}" if self.failed_step else ""
        return f"{self.operation}: FAILED{step} - {self.description}"
