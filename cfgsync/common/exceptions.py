"""
Custom Exception Classes for cfgsync

Hierarchical exception structure for the loader.
Startup errors are fatal to the caller; refresh errors are logged by the watchers.
"""


class CfgSyncError(Exception):
    """Base exception for all cfgsync errors"""

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class StartupError(CfgSyncError):
    """Errors raised while resolving or loading the initial configuration"""

    def __init__(self, message: str):
        super().__init__(message, recoverable=False)


class InvalidLocator(StartupError):
    """Config locator could not be parsed"""

    def __init__(self, locator: str, reason: str = ""):
        self.locator = locator
        detail = f": {reason}" if reason else ""
        super().__init__(f"Invalid locator '{locator}'{detail}")


class UnsupportedProvider(StartupError):
    """Remote scheme names a provider we cannot talk to"""

    def __init__(self, scheme: str, provider: str | None = None):
        self.scheme = scheme
        self.provider = provider
        if provider:
            message = f"Unsupported provider '{provider}' (scheme '{scheme}')"
        else:
            message = f"Invalid config scheme '{scheme}'"
        super().__init__(message)


class MissingEncoding(StartupError):
    """Remote path has no file extension to select a decoder"""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Remote config path '{path}' has no file extension")


class SourceUnreadable(StartupError):
    """Local file or remote endpoint could not be fetched"""

    def __init__(self, source: str, reason: str = ""):
        self.source = source
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Cannot read config source '{source}'{detail}")


class ConfigFileNotFound(SourceUnreadable):
    """No config file found in any of the search paths"""

    def __init__(self, cfg_name: str, search_paths: list[str]):
        self.cfg_name = cfg_name
        self.search_paths = search_paths
        super().__init__(
            cfg_name,
            f"not found in search paths {search_paths}",
        )


class InvalidSetting(StartupError):
    """Loader tunable from the environment has an unusable value"""

    def __init__(self, name: str, value: str, reason: str = ""):
        self.name = name
        self.value = value
        detail = f": {reason}" if reason else ""
        super().__init__(f"Invalid value for {name}: '{value}'{detail}")


class DecodeError(StartupError):
    """Content was read but does not parse under its encoding"""

    def __init__(self, source: str, encoding_type: str, reason: str = ""):
        self.source = source
        self.encoding_type = encoding_type
        detail = f": {reason}" if reason else ""
        super().__init__(f"Cannot decode '{source}' as {encoding_type}{detail}")


class RefreshFailed(CfgSyncError):
    """Watcher-time reload failure; previous snapshot stays in effect"""

    def __init__(self, source: str, cause: Exception):
        self.source = source
        self.cause = cause
        super().__init__(f"Refresh Error: {source}: {cause}", recoverable=True)
