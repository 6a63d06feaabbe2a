"""Deployment registry and its immutable snapshots."""

from .registry import DeploymentRegistry
from .snapshot import RegistrySnapshot, build_rules

__all__ = ["DeploymentRegistry", "RegistrySnapshot", "build_rules"]
