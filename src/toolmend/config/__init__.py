"""Configuration for toolmend."""

from .settings import RecoverySettings, ToolPolicyConfig, load_settings

__all__ = ["RecoverySettings", "ToolPolicyConfig", "load_settings"]
