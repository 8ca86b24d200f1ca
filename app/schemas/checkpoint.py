from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel


class CheckpointMetadata(BaseModel):
    elapsed_seconds: float
    remaining_seconds: float
    checkpoint_index: int
    is_final: bool = False  # last checkpoint before the agent ends the session


class CheckpointMessage(BaseModel):
    """Periodic elapsed/remaining notice pushed by the agent."""

    type: Literal["time_checkpoint"] = "time_checkpoint"
    status: Optional[str] = None
    metadata: CheckpointMetadata
