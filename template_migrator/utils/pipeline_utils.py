#!/usr/bin/env python3
"""
Pipeline utilities for the template migrator
Logging setup, the append-only error log and layout dumps
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from ..core.layout_blob import decode_layout_param

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(component_name: str, log_dir: Optional[Path] = None,
                  level: int = logging.INFO) -> logging.Logger:
    """Setup file and console logging for a component.

    Handlers go on the package logger so module loggers inside
    ``template_migrator`` share them.
    """

    log_dir = Path(log_dir) if log_dir else Path.cwd() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    package_logger = logging.getLogger('template_migrator')
    package_logger.setLevel(level)

    # Clear existing handlers
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    # File handler
    file_handler = logging.FileHandler(
        log_dir / f"{component_name.lower()}.log",
        encoding='utf-8'
    )
    file_handler.setLevel(level)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT)
    file_handler.setFormatter(formatter)
    console_handler.setFormatter(formatter)

    package_logger.addHandler(file_handler)
    package_logger.addHandler(console_handler)

    return logging.getLogger(f'template_migrator.{component_name.lower()}')


def format_error_lines(messages: Iterable[str], when: Optional[datetime] = None) -> List[str]:
    timestamp = (when or datetime.now()).strftime('%Y-%m-%d %H:%M:%S')
    return [f"{timestamp} {message}" for message in messages]


def log_errors(messages: Iterable[str], error_log: Path,
               logger: Optional[logging.Logger] = None) -> List[str]:
    """Append timestamped messages to the error log"""
    logger = logger or logging.getLogger('template_migrator')
    lines = format_error_lines(messages)

    logger.error("The following errors happened:")
    for line in lines:
        logger.error(f"❌ {line}")

    error_log = Path(error_log)
    error_log.parent.mkdir(parents=True, exist_ok=True)
    with open(error_log, 'a', encoding='utf-8') as f:
        for line in lines:
            f.write(line + '\n')

    return lines


def post_data_filename(version_name: str, org_label: str) -> str:
    return f"{version_name} {org_label} org POST data.json"


def save_post_data(version_name: str, org_label: str, layout_param: str,
                   output_dir: Path) -> Optional[Path]:
    """Dump a decoded layout for auditing; returns None when it cannot be decoded"""
    try:
        layout = decode_layout_param(layout_param)
    except ValueError as e:
        logging.getLogger('template_migrator').warning(
            f"Could not decode {org_label} layout of {version_name}: {e}"
        )
        return None

    output_path = Path(output_dir) / post_data_filename(version_name, org_label)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(layout, f, indent=2, ensure_ascii=False)

    return output_path
