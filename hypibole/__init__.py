"""hypibole package: whitelisted GPIO get/set over HTTP."""

__all__ = [
    "board",
    "cli",
    "config",
    "daemon",
    "executor",
    "gpio",
    "http_server",
    "launcher",
    "operations",
    "pin_registry",
]
