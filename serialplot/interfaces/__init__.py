from .batch_sink import BatchSink
from .command_sink import CommandEvent, CommandSink

__all__ = ["BatchSink", "CommandEvent", "CommandSink"]
