from __future__ import annotations

from typing import Optional, Protocol

from .model import AbsenceFineTracking


class AbsenceFineRepository(Protocol):
    def get(self, student_id: int) -> Optional[AbsenceFineTracking]:
        raise NotImplementedError

    def save(self, tracking: AbsenceFineTracking) -> None:
        """Upsert the tracking row and replace its history in one transaction."""

        raise NotImplementedError
