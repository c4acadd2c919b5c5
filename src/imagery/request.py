from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from imagery.errors import InvalidTileStateError

if TYPE_CHECKING:
    from PIL import Image


class TileRequestState(str, Enum):
    UNISSUED = 'unissued'
    IN_FLIGHT = 'in_flight'
    RECEIVED = 'received'
    FAILED = 'failed'


TERMINAL_STATES = frozenset({TileRequestState.RECEIVED, TileRequestState.FAILED})


class TileRequest:
    """
    Per-tile request handle.

    Owned by exactly one lifecycle. Callers hold it through counted
    references; once the count drops to zero no further retry is scheduled,
    but an attempt already in flight is allowed to finish.
    """

    def __init__(self, level: int, x: int, y: int) -> None:
        self.level = level
        self.x = x
        self.y = y
        self.state = TileRequestState.UNISSUED
        self.attempt_count = 0
        self.image: Image.Image | None = None
        self.error: BaseException | None = None
        self._references = 0
        self._released = False
        self._owner: object | None = None

    def __repr__(self) -> str:
        return (
            f'TileRequest(z/x/y={self.level}/{self.x}/{self.y}, '
            f'state={self.state.name}, attempts={self.attempt_count})'
        )

    def claim(self, owner: object) -> None:
        """Bind the request to its single lifecycle."""
        if self._owner is not None and self._owner is not owner:
            msg = f'{self!r} is already owned by another lifecycle'
            raise InvalidTileStateError(msg)
        self._owner = owner

    @property
    def references(self) -> int:
        return self._references

    def add_reference(self) -> int:
        self._references += 1
        self._released = False
        return self._references

    def release_reference(self) -> int:
        if self._references > 0:
            self._references -= 1
            if self._references == 0:
                self._released = True
        return self._references

    @property
    def released(self) -> bool:
        """True once the last reference has been released."""
        return self._released

    @property
    def settled(self) -> bool:
        return self.state in TERMINAL_STATES
