"""
Centralized logging configuration for the Activity Engine.

Provides setup_logging() function that configures all loggers with file handlers,
log rotation, and configurable log levels from config.yaml.
"""
import logging
import logging.handlers
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

COMPONENT_NAMES = [
    'Main',
    'VelocityTracker',
    'MarketVelocityMonitor',
    'UnusualActivityDetector',
    'MessageNormalizer',
    'RealtimeMonitor',
]


def setup_logging(config: Optional[Dict] = None, level_override: Optional[str] = None) -> Dict[str, logging.Logger]:
    """
    Set up centralized logging configuration.

    Args:
        config: Configuration dictionary (from config.yaml). If None, uses defaults.
        level_override: Console level that wins over the config (e.g. from the environment).

    Returns:
        Dictionary of configured loggers by component name.
    """
    log_config = (config or {}).get('logging', {}) or {}
    log_dir = log_config.get('log_dir', 'logs')
    main_log_config = log_config.get('main_log', {})
    alert_log_config = log_config.get('alert_log', {})
    console_config = log_config.get('console', {})
    component_levels = log_config.get('levels', {})

    log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    formatter = logging.Formatter(log_format)

    today = datetime.now().strftime('%Y%m%d')

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Handlers filter
    root_logger.handlers.clear()

    file_logging = main_log_config.get('enabled', True) or alert_log_config.get('enabled', False)
    log_path = Path(log_dir)
    if file_logging:
        log_path.mkdir(parents=True, exist_ok=True)

    # Main application log file handler
    if main_log_config.get('enabled', True):
        main_log_level = getattr(logging, main_log_config.get('level', 'INFO').upper())
        main_log_file = log_path / f"activity_engine_{today}.log"

        rotation_config = main_log_config.get('rotation', {})
        max_bytes = rotation_config.get('max_bytes', 10485760)  # 10MB default
        backup_count = rotation_config.get('backup_count', 5)

        main_file_handler = logging.handlers.RotatingFileHandler(
            main_log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )
        main_file_handler.setLevel(main_log_level)
        main_file_handler.setFormatter(formatter)
        root_logger.addHandler(main_file_handler)

    # Alert-only log file (one line per emitted alert)
    if alert_log_config.get('enabled', False):
        alert_log_level = getattr(logging, alert_log_config.get('level', 'INFO').upper())
        alert_log_file = log_path / f"alerts_{today}.log"

        rotation_config = alert_log_config.get('rotation', {})
        max_bytes = rotation_config.get('max_bytes', 10485760)
        backup_count = rotation_config.get('backup_count', 3)

        alert_file_handler = logging.handlers.RotatingFileHandler(
            alert_log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )
        alert_file_handler.setLevel(alert_log_level)
        alert_file_handler.setFormatter(logging.Formatter('%(asctime)s - %(message)s'))

        alert_logger = logging.getLogger('RealtimeMonitor.Alerts')
        alert_logger.addHandler(alert_file_handler)
        alert_logger.setLevel(alert_log_level)
        alert_logger.propagate = False  # Don't propagate to root logger

    # Console handler
    if console_config.get('enabled', True):
        console_level_name = level_override or console_config.get('level', 'INFO')
        console_handler = logging.StreamHandler()
        console_handler.setLevel(getattr(logging, console_level_name.upper()))
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    # Configure component-specific log levels
    loggers = {}
    for component_name in COMPONENT_NAMES:
        logger = logging.getLogger(component_name)
        level_name = component_levels.get(component_name, 'INFO')
        logger.setLevel(getattr(logging, level_name.upper()))
        loggers[component_name] = logger

    return loggers


def get_log_file_paths(log_dir: str = 'logs') -> Dict[str, str]:
    """
    Get paths to current log files for monitoring.

    Args:
        log_dir: Log directory path

    Returns:
        Dictionary mapping log type to file path
    """
    log_path = Path(log_dir)
    today = datetime.now().strftime('%Y%m%d')

    return {
        'main': str(log_path / f"activity_engine_{today}.log"),
        'alerts': str(log_path / f"alerts_{today}.log"),
    }
