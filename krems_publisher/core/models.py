"""Data models and errors for Krems Publisher."""

from dataclasses import dataclass, field
from typing import Callable, List, Optional


class Secret:
    """A string value that never shows up in logs or reprs.

    The raw value is only reachable through get_secret_value().
    """

    MASK = "<redacted>"

    def __init__(self, value: str):
        self._value = value

    def get_secret_value(self) -> str:
        return self._value

    def __bool__(self) -> bool:
        return bool(self._value)

    def __eq__(self, other) -> bool:
        if isinstance(other, Secret):
            return self._value == other._value
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)

    def __str__(self) -> str:
        return self.MASK

    def __repr__(self) -> str:
        return f"Secret('{self.MASK}')"


@dataclass
class CommandResult:
    """Trimmed output of a command that exited with status 0.

    stderr may be non-empty: git reports progress there.
    """
    stdout: str
    stderr: str


@dataclass
class Notice:
    """A user-facing status message.

    level is one of 'status', 'success', 'error' or 'log'.
    """
    message: str
    level: str = "status"

    @property
    def is_error(self) -> bool:
        return self.level == "error"


FeedbackCallback = Callable[[str, str], None]


@dataclass
class PublishResult:
    """Result of a publish operation."""
    committed: bool = False
    branch: Optional[str] = None
    authenticated: bool = False
    warnings: List[str] = field(default_factory=list)


class KremsError(Exception):
    """Base class for every error raised by Krems Publisher."""


class ConfigurationError(KremsError):
    """Required settings are missing or invalid."""


class CommandFailure(KremsError):
    """An external command exited non-zero or could not be launched.

    Attributes:
        stdout: Captured standard output (trimmed)
        stderr: Captured standard error (trimmed)
        returncode: Exit status, or None when the program never started
    """

    def __init__(
        self,
        message: str,
        stdout: str = "",
        stderr: str = "",
        returncode: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode

    @property
    def launched(self) -> bool:
        """False when the program could not be started at all."""
        return self.returncode is not None

    @property
    def detail(self) -> str:
        """Most useful text for a user: stderr, then stdout, then the message."""
        return self.stderr or self.stdout or self.message


class ProvisioningError(KremsError):
    """The preview binary could not be installed."""


class UnsupportedPlatformError(ProvisioningError):
    """No release asset exists for the current operating system."""


class RepositoryInitError(KremsError):
    """Cloning or seeding the site repository failed.

    Attributes:
        stage: Name of the step that failed ('check', 'clone', 'remote', ...)
    """

    def __init__(self, stage: str, message: str):
        super().__init__(message)
        self.stage = stage


class DirectoryNotEmptyError(RepositoryInitError):
    """The clone target already exists and holds files."""

    def __init__(self, path):
        super().__init__(
            "check",
            f"Directory already exists and is not empty: {path}. "
            "If you have existing changes, please commit and push them. "
            "If you want to start fresh, please delete the directory and try again. "
            "If there are git conflicts, please resolve them manually.",
        )
        self.path = path


class PathSafetyError(RepositoryInitError):
    """A destructive operation targeted a path outside the storage root."""

    def __init__(self, path, root):
        super().__init__("delete", f"Refusing to delete {path}: it is not inside {root}")
        self.path = path
        self.root = root


class PreviewError(KremsError):
    """The local preview server could not be started."""


class PublishError(KremsError):
    """A publish step failed.

    Attributes:
        stage: 'add', 'commit' or 'push'
    """

    def __init__(self, stage: str, message: str):
        super().__init__(message)
        self.stage = stage


def no_feedback(message: str, level: str) -> None:
    """FeedbackCallback that discards every notice."""
