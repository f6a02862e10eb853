from __future__ import annotations

from .base import StateLookup
from .tfstate import EMPTY_STATE, StateIndex, load_state

__all__ = [
    "EMPTY_STATE",
    "StateIndex",
    "StateLookup",
    "load_state",
]
