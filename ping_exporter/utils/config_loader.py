import configparser
import math
import os
import re
from dataclasses import dataclass

from ping_exporter.collection.correlator import SEQUENCE_MODULO

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|us|ns|h|m|s)")
_UNIT_SECONDS = {
    'h': 3600.0,
    'm': 60.0,
    's': 1.0,
    'ms': 1e-3,
    'us': 1e-6,
    'ns': 1e-9,
}


def load_config(config_path='configs/default_config.ini'):
    """
    Loads the configuration from a .ini file.

    Args:
        config_path (str): The path to the configuration file.

    Returns:
        configparser.ConfigParser: The loaded configuration object.
    """
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found at: {config_path}")

    config = configparser.ConfigParser()
    config.read(config_path, encoding='utf-8')
    return config


def parse_duration(value):
    """
    Parses a duration such as '500ms', '1s', '1m30s' or a bare number of seconds.

    Returns:
        float: The duration in seconds.
    """
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().lower()
    if not text:
        raise ValueError("Empty duration")
    try:
        return float(text)
    except ValueError:
        pass

    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()
    if pos != len(text) or pos == 0:
        raise ValueError(f"Invalid duration: {value!r}")
    return total


def parse_bind_addr(value):
    """Splits 'host:port' (host may be empty, as in ':9999') into (host, port)."""
    host, sep, port = str(value).rpartition(':')
    if not sep or not port.isdigit():
        raise ValueError(f"Invalid bind address: {value!r}")
    return host, int(port)


@dataclass
class Settings:
    target: str = ""
    interval: float = 1.0
    timeout: float = 2.0
    count: int = -1
    packet_size: int = 56
    receive_poll: float = 0.1
    privileged: bool = True
    bind_addr: str = ":9999"
    metrics_path: str = "/metrics"
    run_duration: float = 0.0
    record_file: str = ""
    log_dir: str = "logs"
    log_level: str = "INFO"
    log_format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    def validate(self):
        if self.interval <= 0 or not math.isfinite(self.interval):
            raise ValueError(f"interval must be positive and finite, got {self.interval}")
        if self.timeout <= 0 or not math.isfinite(self.timeout):
            raise ValueError(f"timeout must be positive and finite, got {self.timeout}")
        if math.ceil(self.timeout / self.interval) >= SEQUENCE_MODULO:
            raise ValueError(
                f"timeout {self.timeout}s / interval {self.interval}s allows more in-flight probes "
                f"than 16-bit sequence numbers can tell apart"
            )
        if self.count < -1:
            raise ValueError(f"count must be -1 (unbounded) or >= 0, got {self.count}")
        if not 0 <= self.packet_size <= 65507:
            raise ValueError(f"packet_size out of range: {self.packet_size}")
        if self.receive_poll <= 0:
            raise ValueError(f"receive_poll must be positive, got {self.receive_poll}")
        if self.run_duration < 0 or not math.isfinite(self.run_duration):
            raise ValueError(f"run_duration must be finite and >= 0, got {self.run_duration}")
        if not self.metrics_path.startswith('/'):
            raise ValueError(f"metrics_path must start with '/', got {self.metrics_path!r}")
        parse_bind_addr(self.bind_addr)
        return self

    @classmethod
    def from_config(cls, config):
        """Builds Settings from a ConfigParser, falling back to the defaults above."""
        defaults = cls()
        return cls(
            interval=parse_duration(config.get('Probe', 'interval', fallback=defaults.interval)),
            timeout=parse_duration(config.get('Probe', 'timeout', fallback=defaults.timeout)),
            count=config.getint('Probe', 'count', fallback=defaults.count),
            packet_size=config.getint('Probe', 'packet_size', fallback=defaults.packet_size),
            receive_poll=parse_duration(config.get('Probe', 'receive_poll', fallback=defaults.receive_poll)),
            privileged=config.getboolean('Probe', 'privileged', fallback=defaults.privileged),
            bind_addr=config.get('Exporter', 'bind_addr', fallback=defaults.bind_addr),
            metrics_path=config.get('Exporter', 'metrics_path', fallback=defaults.metrics_path),
            run_duration=parse_duration(config.get('Scheduler', 'run_duration', fallback=defaults.run_duration)),
            record_file=config.get('Output', 'record_file', fallback=defaults.record_file),
            log_dir=config.get('Logging', 'log_dir', fallback=defaults.log_dir),
            log_level=config.get('Logging', 'level', fallback=defaults.log_level),
            # raw=True keeps the '%' placeholders of the log format intact
            log_format=config.get('Logging', 'format', raw=True, fallback=defaults.log_format),
        )
