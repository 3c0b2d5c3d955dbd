"""
Relay configuration for subtunnel.

This module defines the configuration dataclass shared by the relay server
and the CLI. No environment variables are read: the CLI updates the global
instance from its options before doing any work.

Usage:
    from subtunnel.config import config

    config.PORT = 8080
    config.LOG_LEVEL = LogLevel.DEBUG
"""

import os
from dataclasses import dataclass

from subtunnel.models.enums import LogLevel


# =============================================================================
# Configuration Dataclass
# =============================================================================


@dataclass
class RelayConfig:
    """
    Relay configuration.

    Attributes:
        BIND_IP: IP address the public listener binds to.
        PORT: Public listener port.
        REGISTRY_FILE: Tunnel registry file, relative to the working directory.
        DESTINATION_HOST: Address every tunnel forwards to.
        LOG_LEVEL: Logging verbosity level.
    """

    # -------------------------------------------------------------------------
    # Network Configuration
    # -------------------------------------------------------------------------

    BIND_IP: str = "0.0.0.0"
    PORT: int = 27399
    DESTINATION_HOST: str = "127.0.0.1"

    # -------------------------------------------------------------------------
    # Path Configuration
    # -------------------------------------------------------------------------

    REGISTRY_FILE: str = "./tunnels.json"

    # -------------------------------------------------------------------------
    # Upstream Timeouts (seconds)
    # -------------------------------------------------------------------------

    CONNECT_TIMEOUT: float = 10.0
    # Upper bound on a single wait for upstream bytes, not on the whole transfer
    READ_TIMEOUT: float = 300.0
    WRITE_TIMEOUT: float = 60.0

    # -------------------------------------------------------------------------
    # Public Address Lookup
    # -------------------------------------------------------------------------

    PUBLIC_IP_URL: str = "https://api.ipify.org?format=json"
    PUBLIC_IP_TIMEOUT: float = 5.0
    PUBLIC_IP_FALLBACK: str = "127.0.0.1"

    # -------------------------------------------------------------------------
    # Logging Configuration
    # -------------------------------------------------------------------------

    LOG_LEVEL: LogLevel = LogLevel.INFO

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def get_registry_path(self) -> str:
        """Get the absolute path of the registry file."""
        return os.path.abspath(self.REGISTRY_FILE)


# Global configuration instance
config = RelayConfig()
