"""
Configuration loader for the Router Discovery Server
Loads and validates configuration from YAML files
"""

import os
import yaml
import logging
from typing import Dict, Any
from pathlib import Path
from datetime import datetime
import pytz

from detection.address_enumerator import DEFAULT_PRIORITY_TABLE, expand_priority_entry, parse_scan_range
from detection.exceptions import ScanRangeError
from detection.models import DetectionStrategy

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/config.yaml"

def config_path_from_env() -> str:
    """CONFIG_FILE overrides the bundled config path"""
    return os.environ.get('CONFIG_FILE') or DEFAULT_CONFIG_PATH

def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load configuration from YAML file with validation
    """
    try:
        config_file = Path(config_path)
        if not config_file.exists():
            logger.error(f"Configuration file not found: {config_path}")
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_file, 'r') as f:
            config = yaml.safe_load(f) or {}

        # Validate required sections
        _validate_config(config)

        # Apply defaults
        config = _apply_defaults(config)

        logger.info(f"Configuration loaded from {config_path}")
        return config

    except Exception as e:
        logger.error(f"Failed to load configuration: {e}")
        raise

def _validate_config(config: Dict) -> None:
    """Validate that required configuration sections exist and hold sane values"""
    if not isinstance(config, dict):
        raise ValueError("Configuration must be a mapping")

    if 'detection' not in config:
        raise ValueError("Missing required configuration section: detection")

    detection = config['detection']
    if not isinstance(detection, dict):
        raise ValueError("Configuration section detection must be a mapping")

    if not detection.get('default_scan_range'):
        raise ValueError("detection.default_scan_range is required")
    try:
        parse_scan_range(detection['default_scan_range'])
    except ScanRangeError as e:
        raise ValueError(f"detection.default_scan_range: {e}") from e

    priority_ips = detection.get('priority_ips', [])
    if not isinstance(priority_ips, list):
        raise ValueError("detection.priority_ips must be a list")
    for entry in priority_ips:
        try:
            expand_priority_entry(entry, "0.0.0")
        except ScanRangeError:
            raise ValueError(f"detection.priority_ips: invalid entry {entry!r}") from None

    for strategy in detection.get('strategies', []):
        try:
            DetectionStrategy(strategy)
        except ValueError:
            raise ValueError(f"Unknown detection strategy in detection.strategies: {strategy}") from None

    min_batch = detection.get('min_batch_size', 5)
    max_batch = detection.get('max_batch_size', 20)
    initial_batch = detection.get('initial_batch_size', 10)
    if not 1 <= min_batch <= initial_batch <= max_batch:
        raise ValueError(
            f"Batch sizes must satisfy 1 <= min ({min_batch}) <= initial ({initial_batch}) <= max ({max_batch})"
        )

    for key in ('probe_timeout', 'full_scan_batch_size', 'max_results'):
        if key in detection and detection[key] <= 0:
            raise ValueError(f"detection.{key} must be positive")

    if detection.get('probe_mode', 'live') not in ('live', 'mock'):
        raise ValueError(f"detection.probe_mode must be 'live' or 'mock', got {detection['probe_mode']}")

    cache = config.get('cache', {})
    if 'ttl_seconds' in cache and cache['ttl_seconds'] <= 0:
        raise ValueError("cache.ttl_seconds must be positive")

    if 'backend' in config:
        _validate_backend(config['backend'])

def _validate_backend(backend_config: Dict) -> None:
    """Validate backend scanner configuration"""
    url = backend_config.get('url') or ''
    if url and not url.startswith(('http://', 'https://')):
        raise ValueError(f"backend.url must start with http:// or https://, got {url}")

    if url.startswith('https://') and not backend_config.get('ssl_verify', True):
        logger.warning("backend.ssl_verify is false - backend certificate will not be checked")

def _apply_defaults(config: Dict) -> Dict:
    """Apply default values to configuration"""

    # Detection defaults
    detection_defaults = {
        'probe_mode': 'live',
        'probe_timeout': 1.0,
        'strategies': [s.value for s in (DetectionStrategy.CACHED,
                                         DetectionStrategy.PRIORITY_IPS,
                                         DetectionStrategy.NETWORK_SCAN)],
        'priority_ips': list(DEFAULT_PRIORITY_TABLE),
        'initial_batch_size': 10,
        'min_batch_size': 5,
        'max_batch_size': 20,
        'batch_grow_step': 5,
        'batch_shrink_step': 2,
        'grow_threshold': 0.5,
        'shrink_threshold': 0.1,
        'network_batch_delay': 0.05,
        'full_scan_batch_size': 15,
        'full_scan_batch_delay': 0.1,
        'max_results': 10
    }
    for key, default_value in detection_defaults.items():
        if key not in config['detection']:
            config['detection'][key] = default_value

    # Cache defaults
    if 'cache' not in config:
        config['cache'] = {}
    cache_defaults = {
        'ttl_seconds': 300,
        'scope_by_range': False     # Any fresh entry is returned, whatever the range
    }
    for key, default_value in cache_defaults.items():
        if key not in config['cache']:
            config['cache'][key] = default_value

    # API defaults
    if 'api' not in config:
        config['api'] = {}
    api_defaults = {
        'host': '0.0.0.0',
        'port': 8000,
        'cors_origins': ['*']
    }
    for key, default_value in api_defaults.items():
        if key not in config['api']:
            config['api'][key] = default_value

    # Backend scanner defaults
    if 'backend' not in config:
        config['backend'] = {}
    backend_defaults = {
        'url': '',                  # Empty: backend scan strategy reports unavailable
        'health_timeout': 2.0,
        'ssl_verify': True
    }
    for key, default_value in backend_defaults.items():
        if key not in config['backend']:
            config['backend'][key] = default_value

    # Logging defaults
    if 'logging' not in config:
        config['logging'] = {}
    logging_defaults = {
        'level': 'INFO',
        'file': 'logs/router_discovery.log',
        'console_output': True,
        'timezone': 'UTC'
    }
    for key, default_value in logging_defaults.items():
        if key not in config['logging']:
            config['logging'][key] = default_value

    return config


class TimezoneFormatter(logging.Formatter):
    """Formatter that renders timestamps in a configured timezone"""

    def __init__(self, fmt=None, timezone: str = 'UTC'):
        super().__init__(fmt)
        self.tz = pytz.timezone(timezone)

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, tz=self.tz)
        if datefmt:
            return dt.strftime(datefmt)
        else:
            # Default format: YYYY-MM-DD HH:MM:SS TZ
            return dt.strftime('%Y-%m-%d %H:%M:%S %Z')

def setup_logging(config: Dict) -> None:
    """Setup logging based on configuration"""
    log_config = config.get('logging', {})
    level = log_config.get('level', 'INFO')
    timezone = log_config.get('timezone', 'UTC')

    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = TimezoneFormatter(log_format, timezone)

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=log_format,
        handlers=[]
    )

    # Console handler
    if log_config.get('console_output', True):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logging.getLogger().addHandler(console_handler)

    # File handler
    log_file = log_config.get('file')
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logging.getLogger().addHandler(file_handler)

    # aiohttp is chatty about refused connections during sweeps
    logging.getLogger('aiohttp').setLevel(logging.WARNING)

    logger.info(f"Logging configured: level={level}, timezone={timezone}, console={log_config.get('console_output', True)}, file={log_file}")

def get_sample_config() -> Dict:
    """Return a sample configuration for reference"""
    return {
        "detection": {
            "default_scan_range": "192.168.88.0/24",
            "probe_mode": "live",
            "probe_timeout": 1.0,
            "strategies": ["cached", "priority_ips", "network_scan"],
            "priority_ips": list(DEFAULT_PRIORITY_TABLE),
            "initial_batch_size": 10,
            "min_batch_size": 5,
            "max_batch_size": 20,
            "network_batch_delay": 0.05,
            "full_scan_batch_size": 15,
            "full_scan_batch_delay": 0.1,
            "max_results": 10
        },
        "cache": {
            "ttl_seconds": 300,
            "scope_by_range": False
        },
        "api": {
            "host": "0.0.0.0",
            "port": 8000,
            "cors_origins": ["*"]
        },
        "backend": {
            "url": "http://localhost:8080",
            "health_timeout": 2.0,
            "ssl_verify": True
        },
        "logging": {
            "level": "INFO",
            "file": "logs/router_discovery.log",
            "console_output": True,
            "timezone": "UTC"
        }
    }
