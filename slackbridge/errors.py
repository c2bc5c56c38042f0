class SlackBridgeError(Exception):
    """
    A common superclass for all
    exceptions regarding slackbridge.
    """
    pass

# == Configuration errors ==

class ConfigError(SlackBridgeError):
    """
    Raised when a bridge configuration is
    missing required keys, carries unknown
    ones, or holds values of the wrong shape.
    """
    pass

# == Backend errors ==

class BackendError(SlackBridgeError):
    """
    A common superclass for all exceptions
    involving slackbridge.backend.Backend and
    subclasses thereof.
    """
    pass

# == Bridge errors ==

class BridgeError(SlackBridgeError):
    """
    A common superclass for all exceptions
    involving slackbridge.bot.Bridge.
    """
    pass

class BridgeBackendRefusedError(BridgeError):
    """
    Raised when a backend refuses to be registered
    by a Bridge, when such register operation is
    called with `required=True`.
    """
    pass
