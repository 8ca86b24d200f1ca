from __future__ import annotations

from typing import Any, Optional

from app.core.logger import get_logger
from app.schemas.checkpoint import CheckpointMessage
from app.services.data_decoder import DecodeError, is_checkpoint_message, parse_checkpoint_message

log = get_logger(__name__)


class CheckpointLogger:
    """Data channel handler that logs the agent's time checkpoints."""

    def __init__(self, room_name: Optional[str] = None) -> None:
        self.room_name = room_name

    def __call__(self, data: Any, participant: Optional[str] = None, kind: Optional[Any] = None) -> Optional[CheckpointMessage]:
        if not is_checkpoint_message(data):
            return None
        try:
            checkpoint = parse_checkpoint_message(data)
        except DecodeError as e:
            log.warning("Dropping malformed checkpoint from %s: %s", participant or "?", e)
            return None

        meta = checkpoint.metadata
        mins, secs = divmod(int(meta.elapsed_seconds), 60)
        log.info(
            "Checkpoint room=%s time=%d:%02d elapsed=%s remaining=%s index=%d final=%s status=%s",
            self.room_name,
            mins,
            secs,
            meta.elapsed_seconds,
            meta.remaining_seconds,
            meta.checkpoint_index,
            meta.is_final,
            checkpoint.status,
        )
        if meta.is_final:
            log.warning("Final checkpoint for room=%s: session ending soon", self.room_name)
        return checkpoint
