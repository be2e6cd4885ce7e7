"""Centralized configuration for the agent host."""

import os

from . import __version__


class Config:
    """
    Agent host configuration with environment variable overrides.

    All configuration values are centralized here with sensible defaults.
    Values can be overridden via environment variables.
    """

    @staticmethod
    def _parse_bool(value: str) -> bool:
        """Parse a boolean flag from an environment string."""
        return value.strip().lower() in {"1", "true", "yes", "on"}

    # ========================================================================
    # Host Configuration
    # ========================================================================
    HOST_VERSION: str = os.getenv("AGENT_HOST_VERSION", __version__)
    WORKSPACE_ROOT: str = os.getenv("WORKSPACE_ROOT", "./workspace")
    HOST_CONFIG_PATH: str = os.getenv("AGENT_HOST_CONFIG", "./agent_host.yaml")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # ========================================================================
    # Decision Store Configuration
    # ========================================================================
    DECISION_STORE: str = os.getenv("DECISION_STORE", "memory")
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    REDIS_KEY_PREFIX: str = os.getenv("REDIS_KEY_PREFIX", "approvals")
    REDIS_MAX_CONNECTIONS: int = int(os.getenv("REDIS_MAX_CONNECTIONS", "20"))
    REDIS_SOCKET_CONNECT_TIMEOUT: float = float(
        os.getenv("REDIS_SOCKET_CONNECT_TIMEOUT", "2")
    )
    REDIS_SOCKET_TIMEOUT: float = float(os.getenv("REDIS_SOCKET_TIMEOUT", "2"))
    REDIS_CONNECT_RETRIES: int = int(os.getenv("REDIS_CONNECT_RETRIES", "3"))
    REDIS_CONNECT_RETRY_DELAY: float = float(
        os.getenv("REDIS_CONNECT_RETRY_DELAY", "0.5")
    )
    REDIS_CONNECT_RETRY_MAX_DELAY: float = float(
        os.getenv("REDIS_CONNECT_RETRY_MAX_DELAY", "4")
    )

    # ========================================================================
    # Approval Configuration
    # ========================================================================
    APPROVAL_TIMEOUT: float = float(os.getenv("APPROVAL_TIMEOUT", "300"))  # 0 = wait forever

    # ========================================================================
    # Audit Configuration
    # ========================================================================
    AUDIT_ENABLED: bool = _parse_bool.__func__(os.getenv("AUDIT_ENABLED", "true"))
    AUDIT_LOG_PATH: str = os.getenv("AUDIT_LOG_PATH", "./audit.jsonl")
    AUDIT_MAX_BYTES: int = int(os.getenv("AUDIT_MAX_BYTES", str(10 * 1024 * 1024)))  # 0 = never rotate
    AUDIT_BACKUP_COUNT: int = int(os.getenv("AUDIT_BACKUP_COUNT", "5"))

    @classmethod
    def validate(cls) -> bool:
        """
        Validate configuration consistency.

        Checks:
        - DECISION_STORE names a known backend
        - HOST_VERSION is a valid semantic version
        - Timeouts and pool sizes are in range

        Returns:
            True if validation passes

        Raises:
            ValueError: If validation fails
        """
        from .versioning import is_valid_version

        errors = []

        if cls.DECISION_STORE not in {"memory", "redis"}:
            errors.append(
                f"DECISION_STORE must be 'memory' or 'redis', got '{cls.DECISION_STORE}'"
            )

        if not is_valid_version(cls.HOST_VERSION):
            errors.append(f"HOST_VERSION is not a valid semver: '{cls.HOST_VERSION}'")

        if cls.APPROVAL_TIMEOUT < 0:
            errors.append(f"APPROVAL_TIMEOUT must be >= 0, got {cls.APPROVAL_TIMEOUT}")

        if cls.AUDIT_MAX_BYTES < 0 or cls.AUDIT_BACKUP_COUNT < 0:
            errors.append(
                "AUDIT_MAX_BYTES and AUDIT_BACKUP_COUNT must be >= 0, "
                f"got {cls.AUDIT_MAX_BYTES} and {cls.AUDIT_BACKUP_COUNT}"
            )

        if cls.REDIS_MAX_CONNECTIONS <= 0:
            errors.append(
                f"REDIS_MAX_CONNECTIONS must be > 0, got {cls.REDIS_MAX_CONNECTIONS}"
            )
        if cls.REDIS_SOCKET_CONNECT_TIMEOUT <= 0:
            errors.append(
                "REDIS_SOCKET_CONNECT_TIMEOUT must be > 0, "
                f"got {cls.REDIS_SOCKET_CONNECT_TIMEOUT}"
            )
        if cls.REDIS_SOCKET_TIMEOUT <= 0:
            errors.append(
                f"REDIS_SOCKET_TIMEOUT must be > 0, got {cls.REDIS_SOCKET_TIMEOUT}"
            )
        if cls.REDIS_CONNECT_RETRIES <= 0:
            errors.append(
                f"REDIS_CONNECT_RETRIES must be > 0, got {cls.REDIS_CONNECT_RETRIES}"
            )

        if errors:
            raise ValueError(f"Config validation failed: {'; '.join(errors)}")

        return True
