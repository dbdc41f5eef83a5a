from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self._t = float(start)

    def time(self) -> float:
        return self._t

    def advance(self, seconds: float) -> None:
        self._t += float(seconds)

    def set(self, t: float) -> None:
        self._t = float(t)


@dataclass
class FakeLister:
    installed: List[str] = field(default_factory=list)
    calls: int = 0

    def list_installed(self) -> List[str]:
        self.calls += 1
        return list(self.installed)


class DummyLogger:
    def __init__(self):
        self.messages: List[str] = []

    def debug(self, msg, *_a, **_k):  # noqa: ANN001
        self.messages.append(str(msg))

    def info(self, msg, *_a, **_k):  # noqa: ANN001
        self.messages.append(str(msg))

    def warning(self, msg, *_a, **_k):  # noqa: ANN001
        self.messages.append(str(msg))

    def error(self, msg, *_a, **_k):  # noqa: ANN001
        self.messages.append(str(msg))
