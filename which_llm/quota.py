from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

from ._errors import CacheError
from ._fs import atomic_write_bytes
from ._types import QuotaState

logger = logging.getLogger(__name__)


class QuotaObserver(Protocol):
    def record(self, profile: str, state: QuotaState) -> None: ...


class QuotaTracker:
    """Keeps the last observed rate-limit state per profile. Purely informational."""

    def __init__(self, base_dir: Path):
        self._base_dir = Path(base_dir)

    def path(self, profile: str) -> Path:
        # Percent-encoding is reversible, so distinct profiles never share a file.
        return self._base_dir / f"quota-{quote(profile, safe='')}.json"

    def record(self, profile: str, state: QuotaState) -> None:
        if state.is_low:
            logger.warning(
                "API quota low for profile '%s': %d of %d requests remaining (resets %s)",
                profile,
                state.remaining,
                state.limit,
                state.reset_at,
            )
        try:
            atomic_write_bytes(self.path(profile), json.dumps(state.to_dict(), indent=2).encode("utf-8"))
        except OSError as e:
            raise CacheError(f"Failed to record quota for '{profile}': {e}") from e

    def last(self, profile: str) -> QuotaState | None:
        path = self.path(profile)
        if not path.exists():
            return None
        try:
            return QuotaState.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable quota file %s: %s", path, e)
            return None


__all__ = ["QuotaObserver", "QuotaTracker"]
