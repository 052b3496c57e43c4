from .batcher import Batcher
from .data_worker import DataWorker
from .messages import (
    MessageType,
    Notice,
    SessionEnded,
    ShutdownCommand,
    StartCommand,
    StopCommand,
    UpdateActiveParserCommand,
    UpdateSimConfigCommand,
    WorkerCommand,
    WorkerMessage,
)
from .pump import StreamPump
from .simulator import SignalSimulator, points_for_interval
from .timesync import AresTimeSync

__all__ = [
    "AresTimeSync",
    "Batcher",
    "DataWorker",
    "MessageType",
    "Notice",
    "SessionEnded",
    "ShutdownCommand",
    "SignalSimulator",
    "StartCommand",
    "StopCommand",
    "StreamPump",
    "UpdateActiveParserCommand",
    "UpdateSimConfigCommand",
    "WorkerCommand",
    "WorkerMessage",
    "points_for_interval",
]
