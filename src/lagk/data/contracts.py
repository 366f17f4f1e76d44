"""
Persisted routing state.

A reach can be paused after any time step and resumed exactly from the
lagged inflow, storage, outflow and carryover inflows recorded here.
"""
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from lagk.core.exceptions import ErrorContext, StateError, handle_exception
from lagk.core.types import ReachID

logger = logging.getLogger(__name__)


class RoutingState(BaseModel):
    """State of one reach at the end of a time step"""
    reach_id: ReachID
    valid_time: datetime
    lagged_inflow: float = 0.0
    storage: float = 0.0
    outflow: float = 0.0
    carryover: List[float] = Field(default_factory=list)

    model_config = {"extra": "forbid"}

    @field_validator("carryover")
    @classmethod
    def validate_carryover(cls, v):
        if len(v) == 0:
            raise ValueError("carryover must contain at least one inflow")
        return v

    @property
    def key(self) -> str:
        return self.valid_time.isoformat()


class StateStore:
    """
    JSON file of routing states keyed by reach id and valid time.

    Layout: ``{reach_id: {iso_valid_time: state_dict}}``.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def _read(self) -> Dict[str, Dict[str, dict]]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise handle_exception(
                e, ErrorContext(component="StateStore", operation="read",
                                details={"path": str(self.path)})
            ) from e

    def _write(self, data: Dict[str, Dict[str, dict]]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)

    def save(self, state: RoutingState):
        """Add or replace the state of a reach at its valid time"""
        data = self._read()
        data.setdefault(state.reach_id, {})[state.key] = state.model_dump(mode="json")
        self._write(data)
        self.logger.debug("Saved state for %s at %s", state.reach_id, state.key)

    def list_times(self, reach_id: ReachID) -> List[datetime]:
        """Valid times stored for a reach, ascending"""
        return sorted(datetime.fromisoformat(t) for t in self._read().get(reach_id, {}))

    def load(self, reach_id: ReachID, valid_time: Optional[datetime] = None) -> RoutingState:
        """
        Load a stored state.

        Args:
            reach_id: Reach to load
            valid_time: Time to load; the latest stored state when None

        Raises:
            StateError: When no matching state exists
        """
        states = self._read().get(reach_id, {})
        context = ErrorContext(reach_id=reach_id, component="StateStore", operation="load")
        if not states:
            raise StateError(f"No state stored in {self.path}", context)

        if valid_time is None:
            key = max(states, key=datetime.fromisoformat)
        else:
            key = valid_time.isoformat()
            context.time = key
            if key not in states:
                raise StateError(
                    f"No state at {key}; available: {sorted(states)}", context
                )
        return RoutingState(**states[key])
