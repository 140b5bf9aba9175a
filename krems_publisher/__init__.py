"""
Krems Publisher - Clone, preview and publish a krems site from an Obsidian vault

Orchestrates git and the krems static site generator:
- Cloning the site repository into the vault
- Downloading krems and serving a local preview
- Committing and pushing local edits
"""

from krems_publisher.core.models import (
    CommandFailure,
    CommandResult,
    ConfigurationError,
    KremsError,
    Notice,
    PublishResult,
    Secret,
)
from krems_publisher.core.runner import CommandRunner
from krems_publisher.core.provisioner import BinaryProvisioner
from krems_publisher.core.initializer import InitMode, RepositoryInitializer
from krems_publisher.core.preview import PreviewController, PreviewState
from krems_publisher.core.publish import PublishWorkflow
from krems_publisher.core.settings import Settings, SettingsStore
from krems_publisher.plugin import KremsPlugin, create_plugin_from_config

__version__ = "0.1.0"

__all__ = [
    "CommandFailure",
    "CommandResult",
    "ConfigurationError",
    "KremsError",
    "Notice",
    "PublishResult",
    "Secret",
    "CommandRunner",
    "BinaryProvisioner",
    "InitMode",
    "RepositoryInitializer",
    "PreviewController",
    "PreviewState",
    "PublishWorkflow",
    "Settings",
    "SettingsStore",
    "KremsPlugin",
    "create_plugin_from_config",
]
