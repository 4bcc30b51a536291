"""Session lifecycle: frame slot, decode pipeline, RTSP session and its supervisor."""

from .decode_pipeline import DecodePipeline, PipelineState
from .frame_slot import FrameSlot
from .session import StreamSession
from .supervisor import CONNECTION_ERRORS, ConnectionSupervisor

__all__ = [
    "CONNECTION_ERRORS",
    "ConnectionSupervisor",
    "DecodePipeline",
    "FrameSlot",
    "PipelineState",
    "StreamSession",
]
