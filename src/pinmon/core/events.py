"""
PinMon Events Module
Defines the state change event and its human-readable text format.
"""

import json
import time
from dataclasses import dataclass, field
from typing import Dict, Any, Mapping


@dataclass(frozen=True)
class StateChange:
    """
    Observed transition of a single input line

    Produced once per transition by the sampler and consumed once by the
    broadcaster. The timestamp does not take part in comparisons.
    """
    pin: int
    state: int
    timestamp: float = field(default_factory=time.time, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"pin": self.pin, "state": self.state, "ts": self.timestamp}

    def to_json(self) -> str:
        """Convert event to JSON string"""
        return json.dumps(self.to_dict())

    def __str__(self) -> str:
        return f"StateChange(pin={self.pin}, state={self.state})"


class ChangeFormatter:
    """Renders state changes as '<name> changed state to <state>' lines"""

    def __init__(self, pin_names: Mapping[int, str], state_names: Mapping[int, str]):
        self.pin_names = dict(pin_names)
        self.state_names = dict(state_names)

    def pin_label(self, pin: int) -> str:
        return self.pin_names.get(pin, str(pin))

    def state_label(self, state: int) -> str:
        return self.state_names.get(state, str(state))

    def format(self, event: StateChange) -> str:
        """
        Format event as a notification line

        Lines or states without a configured name fall back to their
        numeric value.
        """
        return f"{self.pin_label(event.pin)} changed state to {self.state_label(event.state)}\n"
