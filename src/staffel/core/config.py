"""
Configuration management for Staffel

Provides environment-based configuration with sensible defaults.
"""

import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .errors import ConfigurationError
from .models import QueueOptions, QueuePriority, RetryPolicy


@dataclass
class StaffelConfig:
    """Engine configuration and the defaults applied to new queues"""

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Queue defaults
    max_concurrent: int = 1
    queue_timeout: Optional[float] = 300.0
    max_retries: int = 3
    retry_delay: float = 1.0
    backoff_multiplier: float = 2.0
    stop_on_error: bool = False
    default_priority: str = "normal"

    # Reporting
    history_limit: int = 1000

    def __post_init__(self):
        """Load configuration from environment variables"""

        # Logging
        self.log_level = os.getenv('STAFFEL_LOG_LEVEL', self.log_level)

        # Queue defaults
        self.max_concurrent = int(os.getenv('STAFFEL_MAX_CONCURRENT', str(self.max_concurrent)))
        timeout = os.getenv('STAFFEL_QUEUE_TIMEOUT')
        if timeout is not None:
            self.queue_timeout = float(timeout) if timeout.lower() not in ('', 'none', '0') else None
        self.max_retries = int(os.getenv('STAFFEL_MAX_RETRIES', str(self.max_retries)))
        self.retry_delay = float(os.getenv('STAFFEL_RETRY_DELAY', str(self.retry_delay)))
        self.backoff_multiplier = float(
            os.getenv('STAFFEL_BACKOFF_MULTIPLIER', str(self.backoff_multiplier))
        )
        stop_on_error = os.getenv('STAFFEL_STOP_ON_ERROR')
        if stop_on_error is not None:
            self.stop_on_error = stop_on_error.lower() in ('true', '1', 'yes')

        # Reporting
        self.history_limit = int(os.getenv('STAFFEL_HISTORY_LIMIT', str(self.history_limit)))

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary"""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StaffelConfig':
        """Create configuration from dictionary, ignoring unknown keys"""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logging.getLogger(__name__).warning(f"Ignoring unknown configuration keys: {unknown}")
        return cls(**{key: value for key, value in data.items() if key in known})

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> 'StaffelConfig':
        """Load configuration from a YAML file"""
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {path}")

        with open(path, 'r') as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid configuration YAML in {path}: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration in {path} must be a mapping")

        config = cls.from_dict(data)
        config.validate()
        return config

    def validate(self) -> bool:
        """Validate configuration"""
        if self.max_concurrent <= 0:
            raise ConfigurationError("max_concurrent must be positive")

        if self.queue_timeout is not None and self.queue_timeout <= 0:
            raise ConfigurationError("queue_timeout must be positive or unset")

        if self.max_retries < 0:
            raise ConfigurationError("max_retries must be non-negative")

        if self.retry_delay < 0:
            raise ConfigurationError("retry_delay must be non-negative")

        if self.backoff_multiplier < 1:
            raise ConfigurationError("backoff_multiplier must be at least 1")

        if self.history_limit <= 0:
            raise ConfigurationError("history_limit must be positive")

        if self.default_priority not in {p.value for p in QueuePriority}:
            raise ConfigurationError(f"Unknown default_priority: {self.default_priority}")

        if not isinstance(getattr(logging, self.log_level.upper(), None), int):
            raise ConfigurationError(f"Unknown log_level: {self.log_level}")

        return True

    def default_queue_options(self) -> QueueOptions:
        """Queue options used when a queue is created without any"""
        return QueueOptions(
            max_concurrent=self.max_concurrent,
            retry_policy=RetryPolicy(
                max_retries=self.max_retries,
                retry_delay=self.retry_delay,
                backoff_multiplier=self.backoff_multiplier,
            ),
            timeout=self.queue_timeout,
            priority=QueuePriority(self.default_priority),
            stop_on_error=self.stop_on_error,
        )


def setup_logging(config: StaffelConfig):
    """Setup logging based on configuration"""
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper()),
        format=config.log_format
    )

    # Engine internals are noisy at DEBUG; keep them at the configured level
    if config.log_level.upper() == 'DEBUG':
        logging.getLogger('staffel').setLevel(logging.DEBUG)
    else:
        logging.getLogger('asyncio').setLevel(logging.WARNING)
