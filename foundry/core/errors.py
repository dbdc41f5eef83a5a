from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict


class Severity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class FoundryError(Exception):
    code: str
    user_message: str
    severity: Severity = Severity.ERROR
    recoverable: bool = True
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.code)

    def __str__(self) -> str:
        if not self.context:
            return self.user_message
        ctx = ", ".join(f"{k}={v}" for k, v in sorted(self.context.items()))
        return f"{self.user_message} ({ctx})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "recoverable": bool(self.recoverable),
            "context": {k: str(v) for k, v in (self.context or {}).items()},
        }


# ---- Core types ----
class NotFoundError(FoundryError):
    def __init__(self, user_message: str = "Not found.", **ctx: Any):
        super().__init__("not_found", user_message, severity=Severity.WARN, recoverable=True, context=ctx)


class AlreadyExistsError(FoundryError):
    def __init__(self, user_message: str = "Already exists.", **ctx: Any):
        super().__init__("already_exists", user_message, severity=Severity.WARN, recoverable=True, context=ctx)


class ValidationError(FoundryError):
    def __init__(self, user_message: str = "Invalid configuration.", **ctx: Any):
        super().__init__("validation_error", user_message, severity=Severity.ERROR, recoverable=False, context=ctx)


class ChecksumMismatchError(FoundryError):
    def __init__(self, user_message: str = "Checksum verification failed.", **ctx: Any):
        super().__init__("checksum_mismatch", user_message, severity=Severity.CRITICAL, recoverable=False, context=ctx)


class EncryptionError(FoundryError):
    def __init__(self, user_message: str = "Encryption error.", **ctx: Any):
        super().__init__("encryption_error", user_message, severity=Severity.ERROR, recoverable=False, context=ctx)


class FilesystemError(FoundryError):
    def __init__(self, user_message: str = "Filesystem operation failed.", **ctx: Any):
        super().__init__("io_error", user_message, severity=Severity.ERROR, recoverable=True, context=ctx)


class InUseError(FoundryError):
    def __init__(self, user_message: str = "Configuration is in use.", **ctx: Any):
        super().__init__("in_use", user_message, severity=Severity.WARN, recoverable=True, context=ctx)


_EXIT_CODES: Dict[str, int] = {
    "validation_error": 2,
    "not_found": 3,
    "already_exists": 4,
    "checksum_mismatch": 5,
    "encryption_error": 6,
    "in_use": 7,
}


def exit_code_for(err: BaseException) -> int:
    if isinstance(err, FoundryError):
        return _EXIT_CODES.get(err.code, 1)
    return 1
