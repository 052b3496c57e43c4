from .data_buffer import DataBuffer, RateMeter
from .event_bus import EventBus
from .serial_link import SerialLink
from .state import BufferEstimate, ConnectionState, PipelineStatus

__all__ = ["BufferEstimate", "ConnectionState", "DataBuffer", "EventBus", "PipelineStatus", "RateMeter", "SerialLink"]
