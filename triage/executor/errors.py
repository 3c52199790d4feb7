from __future__ import annotations

from typing import List, Optional

from triage.core.errors import TriageError, find_in_chain


class ActionValidationError(TriageError):
    def __init__(self, action_type: str, err: BaseException) -> None:
        self.action_type = action_type
        self.err = err
        super().__init__(f"action {action_type} validation failed: {err}")
        self.__cause__ = err


class ActionExecutionError(TriageError):
    def __init__(self, action_type: str, attempts: int, err: BaseException, index: int = -1) -> None:
        self.action_type = action_type
        self.attempts = attempts
        self.err = err
        self.index = index
        super().__init__(f"action {action_type} failed (attempts {attempts}): {err}")
        self.__cause__ = err


class MultipleActionsError(TriageError):
    """All exhausted action failures of one batch, in submission order."""

    def __init__(self, errors: List[ActionExecutionError]) -> None:
        self.errors = sorted(errors, key=lambda e: e.index)
        first = self.errors[0] if self.errors else None
        super().__init__(f"{len(self.errors)} action(s) failed: {first}")
        if first is not None:
            self.__cause__ = first

    def failed_types(self) -> List[str]:
        return [e.action_type for e in self.errors]

    def find(self, kind: type) -> Optional[BaseException]:
        for e in self.errors:
            hit = find_in_chain(e, kind)
            if hit is not None:
                return hit
        return None
