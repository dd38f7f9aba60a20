import time
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class LifecycleState:
    """
    Process lifecycle flags handed to the verification entry point.

    The engine refuses to run until startup has finished (members chunked,
    presence set) so early gateway events are ignored rather than half-handled.
    """

    ready: bool = False
    started_at: float = field(default_factory=time.monotonic)
    ready_at: Optional[float] = None

    def mark_ready(self) -> None:
        self.ready = True
        self.ready_at = time.monotonic()

    def mark_stopping(self) -> None:
        self.ready = False
