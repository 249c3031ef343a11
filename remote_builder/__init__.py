"""nixos-remote-builder package."""

__all__ = [
    "bundle",
    "cli",
    "config",
    "console",
    "constants",
    "disk",
    "exceptions",
    "identity",
    "lifecycle",
    "models",
    "network",
    "service",
    "utils",
    "vm",
]
