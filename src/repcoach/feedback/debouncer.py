import logging
from dataclasses import dataclass
from typing import Dict, List

logger = logging.getLogger("repcoach.feedback")


@dataclass
class FeedbackConditionState:
    count: int = 0
    active: bool = False


@dataclass
class FeedbackEntry:
    message: str
    color: str
    remaining: int


@dataclass(frozen=True)
class FeedbackView:
    """A feedback line as the renderer should show it."""
    kind: str
    message: str
    color: str
    opacity: float


class FeedbackDebouncer:
    """
    Turns per-frame boolean form conditions into stable on-screen messages.

    A condition must hold for ``threshold`` frames before its message is
    shown, and its counter must drain back to zero before it is considered
    inactive again. Shown messages are refreshed while the condition holds
    and otherwise fade out over ``persistence`` frames via ``tick``.
    """

    def __init__(self, threshold: int = 8, persistence: int = 20, on_deactivate: str = "decay"):
        if on_deactivate not in ("decay", "delete"):
            raise ValueError(f"on_deactivate must be 'decay' or 'delete', got {on_deactivate!r}")
        self.threshold = threshold
        self.persistence = persistence
        self.on_deactivate = on_deactivate
        self._states: Dict[str, FeedbackConditionState] = {}
        self._entries: Dict[str, FeedbackEntry] = {}
        self._activated: List[str] = []

    def update_condition(self, kind: str, condition: bool, message: str, color: str) -> bool:
        """Feed one frame's value of ``kind``; returns whether it is active."""
        state = self._states.setdefault(kind, FeedbackConditionState())
        if condition:
            state.count = min(state.count + 1, self.threshold + 5)
            if state.count >= self.threshold and not state.active:
                state.active = True
                self._entries[kind] = FeedbackEntry(message, color, self.persistence)
                self._activated.append(kind)
                logger.debug(f"Feedback activated: {kind}")
            elif state.active:
                self._entries[kind] = FeedbackEntry(message, color, self.persistence)
        else:
            state.count = max(0, state.count - 1)
            if state.count == 0 and state.active:
                state.active = False
                logger.debug(f"Feedback deactivated: {kind}")
                if self.on_deactivate == "delete":
                    self._entries.pop(kind, None)
        return state.active

    def post(self, kind: str, message: str, color: str, persistence: int = None) -> None:
        """Show a message immediately, bypassing the activation counter."""
        if kind not in self._entries:
            self._activated.append(kind)
        self._entries[kind] = FeedbackEntry(message, color, persistence or self.persistence)

    def tick(self) -> None:
        """Age every entry by one frame and drop the expired ones."""
        self._activated = []
        expired = []
        for kind, entry in self._entries.items():
            entry.remaining -= 1
            if entry.remaining <= 0:
                expired.append(kind)
        for kind in expired:
            del self._entries[kind]

    def is_active(self, kind: str) -> bool:
        state = self._states.get(kind)
        return state is not None and state.active

    def active_kinds(self) -> List[str]:
        return [kind for kind, state in self._states.items() if state.active]

    def entries(self) -> List[FeedbackView]:
        return [
            FeedbackView(kind, entry.message, entry.color, min(1.0, max(0.3, entry.remaining / self.persistence)))
            for kind, entry in self._entries.items()
        ]

    def newly_activated(self) -> List[FeedbackView]:
        """Entries that appeared since the last tick."""
        return [view for view in self.entries() if view.kind in self._activated]

    def has_entry(self, kind: str) -> bool:
        return kind in self._entries

    def remaining(self, kind: str) -> int:
        entry = self._entries.get(kind)
        return entry.remaining if entry else 0

    def reset(self) -> None:
        self._states.clear()
        self._entries.clear()
        self._activated = []
