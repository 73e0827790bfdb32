from .message_log import MessageLog
from .memory_message_log import MemoryMessageLog
from .file_message_log import FileMessageLog


def __getattr__(name):
    """Lazy imports for optional dependencies."""
    if name == "MongoDBMessageLog":
        from .mongodb_message_log import MongoDBMessageLog
        return MongoDBMessageLog
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    'MessageLog',
    'MemoryMessageLog',
    'FileMessageLog',
    'MongoDBMessageLog',
]
