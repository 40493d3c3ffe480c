class ModerationError(Exception):
    """Base class for moderation subsystem errors."""
    pass

class ConfigurationError(ModerationError):
    """Raised when the deployment is miswired (missing keys, missing endpoints)."""
    pass

class StorageError(ModerationError):
    """Raised by stores when a read or write against durable storage fails."""
    pass

class TransitionConflict(ModerationError):
    """Raised inside a unit of work when a conditional status update finds a different current status."""
    pass
