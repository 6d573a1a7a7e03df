"""
PinMon Configuration Module
Centralized configuration management for the pin monitor daemon.
"""

import os
import json
from dataclasses import dataclass, field
from typing import Dict, Any, Iterable

MAX_PIN = 255

DEFAULT_STATE_NAMES = {0: "off", 1: "on"}

GPIO_MODES = ["SIMULATOR", "BCM", "BOARD"]
BACKPRESSURE_POLICIES = ["block", "drop_oldest"]


class ConfigError(ValueError):
    """Raised for invalid startup configuration"""


def parse_mapping(entries: Iterable[str]) -> Dict[int, str]:
    """
    Parse "id:name" strings into a mapping

    The id must be an integer between 0 and 255. Everything after the first
    ':' is the name, so names may themselves contain colons.

    Args:
        entries: Strings like "23:Door sensor"

    Returns:
        Mapping of id to name
    """
    result = {}
    for entry in entries:
        key, sep, name = entry.partition(":")
        if not sep:
            raise ConfigError(f"Argument '{entry}' not delimited by ':'")
        try:
            number = int(key.strip())
        except ValueError:
            raise ConfigError(f"Argument '{entry}' does not start with an integer")
        if number < 0 or number > MAX_PIN:
            raise ConfigError(f"Argument '{entry}': values outside 0-{MAX_PIN} not supported")
        result[number] = name
    return result


def _int_keys(mapping: Dict[Any, str], label: str) -> Dict[int, str]:
    """Convert JSON object keys back to integers"""
    try:
        return {int(k): str(v) for k, v in mapping.items()}
    except (TypeError, ValueError, AttributeError) as e:
        raise ConfigError(f"Invalid {label} mapping: {e}")


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() == "true"


def _coerce(key: str, value: Any, current: Any) -> Any:
    """Convert a config file value to the type of the setting it replaces"""
    kind = type(current)
    if kind is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ("true", "false"):
            return value.lower() == "true"
    elif kind is str:
        if isinstance(value, str):
            return value
    elif not isinstance(value, bool):
        try:
            if kind is int and isinstance(value, float) and not value.is_integer():
                raise ValueError(value)
            return kind(value)
        except (TypeError, ValueError):
            pass
    raise ConfigError(f"Invalid value for {key}: {value!r}")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class Config:
    """
    PinMon Configuration Class

    Holds the line descriptions, state names and sink settings, with
    environment variable support and JSON config file loading.
    """

    # Monitored lines
    pin_names: Dict[int, str] = field(default_factory=dict)
    state_names: Dict[int, str] = field(default_factory=lambda: dict(DEFAULT_STATE_NAMES))
    poll_interval_ms: int = 100
    pull_up: bool = True

    # GPIO settings
    gpio_mode: str = "BCM"  # SIMULATOR, BCM, BOARD

    # Event channel
    event_queue_size: int = 1
    backpressure: str = "block"

    # TCP subscribers
    tcp_host: str = "0.0.0.0"
    tcp_port: int = -1
    write_timeout: float = 1.0

    # Optional sinks
    zmq_endpoint: str = ""
    web_host: str = "0.0.0.0"
    web_port: int = -1
    log_changes: bool = False

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @classmethod
    def from_env(cls) -> 'Config':
        """Create configuration from environment variables"""
        try:
            pins = os.getenv("PINMON_PINS", "")
            states = os.getenv("PINMON_STATES", "")
            state_names = dict(DEFAULT_STATE_NAMES)
            state_names.update(parse_mapping(s for s in states.split(",") if s))

            return cls(
                pin_names=parse_mapping(p for p in pins.split(",") if p),
                state_names=state_names,
                poll_interval_ms=int(os.getenv("PINMON_INTERVAL_MS", str(cls.poll_interval_ms))),
                pull_up=_env_bool("PINMON_PULL_UP", cls.pull_up),

                gpio_mode=os.getenv("GPIO_MODE", cls.gpio_mode).upper(),

                event_queue_size=int(os.getenv("PINMON_QUEUE_SIZE", str(cls.event_queue_size))),
                backpressure=os.getenv("PINMON_BACKPRESSURE", cls.backpressure),

                tcp_host=os.getenv("PINMON_HOST", cls.tcp_host),
                tcp_port=int(os.getenv("PINMON_PORT", str(cls.tcp_port))),
                write_timeout=float(os.getenv("PINMON_WRITE_TIMEOUT", str(cls.write_timeout))),

                zmq_endpoint=os.getenv("PINMON_ZMQ_ENDPOINT", cls.zmq_endpoint),
                web_host=os.getenv("PINMON_WEB_HOST", cls.web_host),
                web_port=int(os.getenv("PINMON_WEB_PORT", str(cls.web_port))),
                log_changes=_env_bool("PINMON_LOG_CHANGES", cls.log_changes),

                log_level=os.getenv("LOG_LEVEL", cls.log_level),
            )
        except ConfigError:
            raise
        except ValueError as e:
            raise ConfigError(f"Invalid environment configuration: {e}")

    @classmethod
    def from_file(cls, config_path: str) -> 'Config':
        """Load configuration from JSON file"""
        try:
            with open(config_path, 'r') as f:
                config_data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigError(f"Error loading config file {config_path}: {e}")
        if not isinstance(config_data, dict):
            raise ConfigError(f"Config file {config_path} must hold a JSON object")

        # Create config from environment first, then override with file values
        config = cls.from_env()

        for key, value in config_data.items():
            if key == "pin_names":
                value = _int_keys(value, "pin name")
            elif key == "state_names":
                names = dict(DEFAULT_STATE_NAMES)
                names.update(_int_keys(value, "state name"))
                value = names
            elif hasattr(config, key):
                value = _coerce(key, value, getattr(config, key))
            if hasattr(config, key):
                setattr(config, key, value)

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary"""
        return {
            "pin_names": {str(k): v for k, v in self.pin_names.items()},
            "state_names": {str(k): v for k, v in self.state_names.items()},
            "poll_interval_ms": self.poll_interval_ms,
            "pull_up": self.pull_up,
            "gpio_mode": self.gpio_mode,
            "event_queue_size": self.event_queue_size,
            "backpressure": self.backpressure,
            "tcp_host": self.tcp_host,
            "tcp_port": self.tcp_port,
            "write_timeout": self.write_timeout,
            "zmq_endpoint": self.zmq_endpoint,
            "web_host": self.web_host,
            "web_port": self.web_port,
            "log_changes": self.log_changes,
            "log_level": self.log_level,
        }

    def save_to_file(self, config_path: str):
        """Save configuration to JSON file"""
        with open(config_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @property
    def poll_interval(self) -> float:
        """Polling interval in seconds"""
        return self.poll_interval_ms / 1000.0

    def tcp_enabled(self) -> bool:
        return self.tcp_port > 0

    def web_enabled(self) -> bool:
        return self.web_port > 0

    def zmq_enabled(self) -> bool:
        return bool(self.zmq_endpoint)

    def network_enabled(self) -> bool:
        """Check if any network sink is configured"""
        return self.tcp_enabled() or self.web_enabled() or self.zmq_enabled()

    def is_simulator_mode(self) -> bool:
        """Check if running in simulator mode"""
        return self.gpio_mode == "SIMULATOR"

    def validate(self) -> bool:
        """Validate configuration settings"""
        errors = []

        for pin in self.pin_names:
            if not isinstance(pin, int) or pin < 0 or pin > MAX_PIN:
                errors.append(f"Invalid pin: {pin}")

        for state in self.state_names:
            if not isinstance(state, int) or state < 0 or state > MAX_PIN:
                errors.append(f"Invalid state value: {state}")

        if not _is_number(self.poll_interval_ms) or self.poll_interval_ms <= 0:
            errors.append(f"Invalid polling interval: {self.poll_interval_ms}")

        ports_valid = True
        for label, port in (("TCP", self.tcp_port), ("web", self.web_port)):
            if not isinstance(port, int) or isinstance(port, bool) or port > 65535:
                errors.append(f"Invalid {label} port: {port}")
                ports_valid = False

        if ports_valid and self.tcp_enabled() and self.web_enabled() and self.tcp_port == self.web_port:
            errors.append(f"TCP and web ports collide: {self.tcp_port}")

        if not _is_number(self.event_queue_size) or self.event_queue_size < 0:
            errors.append(f"Invalid event queue size: {self.event_queue_size}")

        if self.backpressure not in BACKPRESSURE_POLICIES:
            errors.append(f"Invalid backpressure policy: {self.backpressure}")

        if not _is_number(self.write_timeout) or self.write_timeout <= 0:
            errors.append(f"Invalid write timeout: {self.write_timeout}")

        if self.gpio_mode not in GPIO_MODES:
            errors.append(f"Invalid GPIO mode: {self.gpio_mode}")

        if errors:
            raise ConfigError(f"Configuration validation failed: {', '.join(errors)}")

        return True
