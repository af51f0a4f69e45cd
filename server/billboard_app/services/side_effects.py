"""
Post-commit side effects.

Secondary actions (session revocation, notification publish, owner
notifications) are queued while the primary change runs and executed only
after it commits. A failing action is logged and reported as a
``PartialFailure`` warning; it never unwinds the primary change.
"""
import logging
from typing import Callable, List, Tuple

from ..errors import PartialFailure
from ..extensions import db

logger = logging.getLogger(__name__)


class PostCommitActions:
    """Ordered list of named, independently failing follow-up actions."""

    def __init__(self):
        self._actions: List[Tuple[str, Callable, tuple, dict]] = []

    def add(self, name: str, fn: Callable, *args, **kwargs) -> "PostCommitActions":
        self._actions.append((name, fn, args, kwargs))
        return self

    def __len__(self):
        return len(self._actions)

    def run(self) -> List[PartialFailure]:
        """
        Execute every queued action once.

        Returns:
            List[PartialFailure]: one entry per action that raised
        """
        warnings = []
        for name, fn, args, kwargs in self._actions:
            try:
                fn(*args, **kwargs)
            except Exception as exc:
                logger.warning("Post-commit action %s failed: %s", name, exc, exc_info=True)
                try:
                    db.session.rollback()
                except Exception:
                    logger.error("Rollback after failed action %s also failed", name, exc_info=True)
                warnings.append(PartialFailure(name, str(exc) or None))
        self._actions.clear()
        return warnings
