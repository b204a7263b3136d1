"""
Exception hierarchy for the release builder.
"""

from typing import Iterable, Optional

class ReleaseError(Exception):
    """Base class for every error raised by the release builder"""

class ConfigurationError(ReleaseError):
    """Invalid configuration detected before any build work starts"""

class UnsupportedTargetError(ConfigurationError):
    """Requested target is not in the platform catalog"""

    def __init__(self, target: str, supported: Iterable[str] = ()):
        self.target = target
        self.supported = tuple(supported)
        message = f"Invalid target '{target}'"
        if self.supported:
            message += f" (supported: {', '.join(self.supported)})"
        super().__init__(message)

class MissingToolError(ConfigurationError):
    """Required external executable is not installed"""

    def __init__(self, tool: str):
        self.tool = tool
        super().__init__(f"{tool} is required but not installed")

class BuildLockError(ConfigurationError):
    """Another build for the same target holds the lock"""

class MissingToolchainError(ReleaseError):
    """Compiler or native helper executable could not be found"""

    def __init__(self, executable: str, hint: Optional[str] = None):
        self.executable = executable
        self.hint = hint
        message = f"{executable} not found"
        if hint:
            message += f". Install with: {hint}"
        super().__init__(message)

class PackagingError(ReleaseError):
    """Release archive could not be produced"""

class InvalidTransitionError(ReleaseError):
    """Stage sequencer was asked to make a transition it does not allow"""
