"""Core components for Krems Publisher."""

from krems_publisher.core.models import (
    CommandFailure,
    CommandResult,
    ConfigurationError,
    DirectoryNotEmptyError,
    KremsError,
    Notice,
    PathSafetyError,
    PreviewError,
    ProvisioningError,
    PublishError,
    PublishResult,
    RepositoryInitError,
    Secret,
    UnsupportedPlatformError,
)
from krems_publisher.core.runner import CommandRunner
from krems_publisher.core.provisioner import BinaryProvisioner
from krems_publisher.core.initializer import InitMode, RepositoryInitializer
from krems_publisher.core.preview import PreviewController, PreviewState
from krems_publisher.core.publish import PublishWorkflow
from krems_publisher.core.settings import Settings, SettingsStore

__all__ = [
    "CommandFailure",
    "CommandResult",
    "ConfigurationError",
    "DirectoryNotEmptyError",
    "KremsError",
    "Notice",
    "PathSafetyError",
    "PreviewError",
    "ProvisioningError",
    "PublishError",
    "PublishResult",
    "RepositoryInitError",
    "Secret",
    "UnsupportedPlatformError",
    "CommandRunner",
    "BinaryProvisioner",
    "InitMode",
    "RepositoryInitializer",
    "PreviewController",
    "PreviewState",
    "PublishWorkflow",
    "Settings",
    "SettingsStore",
]
