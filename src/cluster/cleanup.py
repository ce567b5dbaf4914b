"""Cleanup registry: reversal actions run last-created-first.

Each successful create registers exactly one CleanupAction. Running the
registry invokes every action in reverse order, logs individual failures
without stopping, and leaves the registry empty.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator

from common import CleanupError

logger = logging.getLogger(__name__)


@dataclass
class CleanupAction:
    """A no-argument reversal of one creation."""
    description: str
    fn: Callable[[], object]

    def __call__(self) -> None:
        self.fn()


class CleanupRegistry:
    """Ordered list of reversal actions."""

    def __init__(self) -> None:
        self._actions: list[CleanupAction] = []

    def __len__(self) -> int:
        return len(self._actions)

    @property
    def actions(self) -> list[CleanupAction]:
        return list(self._actions)

    def register(self, description: str, fn: Callable[[], object]) -> CleanupAction:
        """Append a reversal action."""
        action = CleanupAction(description=description, fn=fn)
        self._actions.append(action)
        logger.debug(f"Registered cleanup: {description}")
        return action

    def reset(self) -> None:
        self._actions = []

    def run(self) -> list[Exception]:
        """Invoke all actions in LIFO order and reset.

        Returns:
            Errors raised by individual actions (empty on full success)
        """
        errors: list[Exception] = []
        actions, self._actions = self._actions, []
        for action in reversed(actions):
            try:
                action()
            except Exception as e:  # best-effort
                logger.error(f"Cleanup '{action.description}' failed: {e}")
                errors.append(e)
        if errors:
            logger.error(f"Failed to cleanup resources: ({CleanupError(errors)})")
        return errors

    @contextmanager
    def scope(self) -> Iterator['CleanupRegistry']:
        """Run the registry exactly once when the block exits, however it exits."""
        try:
            yield self
        finally:
            self.run()
