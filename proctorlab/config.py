"""
Configuration loader for teacher-defined runtime parameters.

Handles loading and validating proctorlab configuration files.
"""

import json
import sys
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional, Tuple

from .errors import ConfigError


@dataclass
class ProctorConfig:
    """
    Runtime configuration for labs and assessments.

    Attributes:
        integrity_attempts: Focus losses tolerated before a forced submission
        time_limit_ms: Wall-clock limit for one sandbox run
        memory_limit_mb: Address-space limit for one sandbox run (Unix only)
        min_coding_answer_length: Coding answers longer than this (stripped) earn their points
        data_dir: Directory where submissions and session logs are stored
        tick_seconds: Countdown resolution
        visibility_poll_seconds: Interval between environment probes
    """
    integrity_attempts: int = 5
    time_limit_ms: int = 2000
    memory_limit_mb: int = 256
    min_coding_answer_length: int = 10
    data_dir: str = "proctor_data"
    tick_seconds: float = 1.0
    visibility_poll_seconds: float = 1.0

    @staticmethod
    def from_dict(data: dict) -> 'ProctorConfig':
        """Create ProctorConfig from dictionary."""
        defaults = ProctorConfig()
        return ProctorConfig(
            integrity_attempts=int(data.get('integrity_attempts', defaults.integrity_attempts)),
            time_limit_ms=int(data.get('time_limit_ms', defaults.time_limit_ms)),
            memory_limit_mb=int(data.get('memory_limit_mb', defaults.memory_limit_mb)),
            min_coding_answer_length=int(data.get('min_coding_answer_length', defaults.min_coding_answer_length)),
            data_dir=str(data.get('data_dir', defaults.data_dir)),
            tick_seconds=float(data.get('tick_seconds', defaults.tick_seconds)),
            visibility_poll_seconds=float(data.get('visibility_poll_seconds', defaults.visibility_poll_seconds))
        )

    def to_dict(self) -> dict:
        return asdict(self)

    def validate(self) -> Tuple[bool, str]:
        """
        Validate configuration consistency.

        Returns:
            Tuple of (is_valid, error_message)
        """
        if self.integrity_attempts < 1:
            return False, "integrity_attempts must be at least 1"

        if self.time_limit_ms < 100 or self.time_limit_ms > 60000:
            return False, "time_limit_ms must be between 100 and 60000"

        if self.memory_limit_mb < 16:
            return False, "memory_limit_mb must be at least 16"

        if self.min_coding_answer_length < 0:
            return False, "min_coding_answer_length must be non-negative"

        if self.tick_seconds <= 0 or self.visibility_poll_seconds <= 0:
            return False, "Timer intervals must be positive"

        if not self.data_dir:
            return False, "data_dir must not be empty"

        return True, ""

    @staticmethod
    def default() -> 'ProctorConfig':
        """Return the default configuration."""
        return ProctorConfig()


def _default_config_path() -> Path:
    if getattr(sys, 'frozen', False):
        exe_dir = Path(sys.executable).parent
    else:
        exe_dir = Path(__file__).parent.parent
    return exe_dir / "config.json"


def load_config(config_path: Optional[Path] = None) -> ProctorConfig:
    """
    Load proctorlab configuration from a JSON file.

    Args:
        config_path: Path to the configuration file. If None, looks for
                    'config.json' next to the executable/script.

    Returns:
        ProctorConfig object with validated configuration

    Raises:
        ConfigError: If config is invalid
    """
    if config_path is None:
        config_path = _default_config_path()

    if not config_path.exists():
        print(f"Warning: Config file '{config_path}' not found. Using default configuration.")
        return ProctorConfig.default()

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config file: {e}")
    except OSError as e:
        raise ConfigError(f"Error reading config file: {e}")

    if not isinstance(data, dict):
        raise ConfigError("Config file must contain a JSON object")

    try:
        config = ProctorConfig.from_dict(data)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration value: {e}")

    is_valid, error_message = config.validate()
    if not is_valid:
        raise ConfigError(f"Invalid configuration: {error_message}")

    return config


def create_sample_config(output_path: Path):
    """
    Create a sample configuration file for teachers.

    Args:
        output_path: Path where to save the sample config
    """
    sample_config = ProctorConfig.default().to_dict()
    sample_config["_comment"] = "Sample proctorlab configuration. Adjust values as needed."
    sample_config["_instructions"] = {
        "integrity_attempts": "Tab switches / fullscreen exits tolerated before the assessment is submitted automatically",
        "time_limit_ms": "Time allowed for one run of student code against one test case",
        "memory_limit_mb": "Memory allowed for one run of student code (Linux/macOS only)",
        "min_coding_answer_length": "Coding answers must be longer than this many characters to earn points",
        "data_dir": "Directory for saved submissions and session logs",
        "tick_seconds": "Countdown resolution in seconds",
        "visibility_poll_seconds": "How often the proctoring environment is checked"
    }

    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(sample_config, f, indent=2)

    print(f"Sample configuration created at: {output_path}")
