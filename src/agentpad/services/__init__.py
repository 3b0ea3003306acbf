"""Service layer helpers (settings, workspace access)."""

from .settings import ProviderProfile, SecretVault, Settings, SettingsStore
from .workspace import FileTreeNode, LocalWorkspace, Workspace, WorkspacePathError

__all__ = [
    "FileTreeNode",
    "LocalWorkspace",
    "ProviderProfile",
    "SecretVault",
    "Settings",
    "SettingsStore",
    "Workspace",
    "WorkspacePathError",
]
