#!/usr/bin/env python3
"""
Migration configuration

Run options come from a YAML file (``config.yml``); org credentials come from
the environment, optionally loaded from a ``.env`` file. Everything is
validated here, before any network or browser activity.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import yaml
from dotenv import find_dotenv, load_dotenv

from .core.exceptions import ConfigurationError
from .core.models import SUPPORTED_SUBTYPES, ImagePolicy

DEFAULT_CONFIG_FILE = 'config.yml'
DEFAULT_API_VERSION = '55.0'


@dataclass
class OrgSettings:
    """Login settings for one org"""
    label: str
    login_url: str
    access_token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    security_token: Optional[str] = None
    instance_url: Optional[str] = None


@dataclass
class MigrationConfig:
    """Run options read from config.yml"""
    report_names: List[str]
    subtypes: List[str]
    create_reports_in_target: bool = False
    headless: bool = True
    write_post_data: bool = False
    error_log_filename: str = 'errors.log'
    window_width: int = 1920
    window_height: int = 1080
    timeout_between_actions: int = 3000
    image_policy: ImagePolicy = field(default_factory=ImagePolicy)
    api_version: str = DEFAULT_API_VERSION


def _require_bool(raw: Mapping, key: str, default: bool, errors: List[str]) -> bool:
    value = raw.get(key, default)
    if not isinstance(value, bool):
        errors.append(f"{key} must be true or false, got {value!r}")
        return default
    return value


def _require_int(raw: Mapping, key: str, default: int, minimum: int, errors: List[str]) -> int:
    value = raw.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        errors.append(f"{key} must be an integer >= {minimum}, got {value!r}")
        return default
    return value


def _require_str(raw: Mapping, key: str, default: str, errors: List[str]) -> str:
    value = raw.get(key, default)
    if value is None:
        return default
    if not isinstance(value, (str, int, float)) or isinstance(value, bool):
        errors.append(f"{key} must be a string, got {value!r}")
        return default
    return str(value)


def parse_config(raw: Mapping) -> MigrationConfig:
    """Validate the parsed YAML document; all problems are reported together"""
    if not isinstance(raw, Mapping):
        raise ConfigurationError("Config file must contain a mapping of settings")

    errors = []

    report_names = raw.get('reportNames')
    if not isinstance(report_names, list) or not report_names:
        errors.append("reportNames must be a non-empty list of report template names")
        report_names = []
    elif not all(isinstance(name, str) and name.strip() for name in report_names):
        errors.append(f"reportNames must only contain non-empty strings, got {report_names!r}")

    subtypes = raw.get('reportSubtypesToMigrate')
    if not isinstance(subtypes, list) or not subtypes:
        errors.append(
            f"reportSubtypesToMigrate must be a non-empty list drawn from {list(SUPPORTED_SUBTYPES)}"
        )
        subtypes = []
    else:
        unknown = [s for s in subtypes if s not in SUPPORTED_SUBTYPES]
        if unknown:
            errors.append(f"Unsupported report subtypes {unknown}, expected any of {list(SUPPORTED_SUBTYPES)}")

    config = MigrationConfig(
        report_names=list(report_names),
        # Keep the fixed subtype order regardless of how the file lists them
        subtypes=[s for s in SUPPORTED_SUBTYPES if s in subtypes],
        create_reports_in_target=_require_bool(raw, 'createReportsInTargetOrg', False, errors),
        headless=_require_bool(raw, 'runInBackground', True, errors),
        write_post_data=_require_bool(raw, 'writePOSTDataToFile', False, errors),
        error_log_filename=_require_str(raw, 'errorLogFilename', 'errors.log', errors),
        window_width=_require_int(raw, 'windowWidth', 1920, 1, errors),
        window_height=_require_int(raw, 'windowHeight', 1080, 1, errors),
        timeout_between_actions=_require_int(raw, 'timeoutBetweenActions', 3000, 0, errors),
        image_policy=ImagePolicy(
            strip=_require_bool(raw, 'removeSourceImages', False, errors),
            replacement=_require_str(raw, 'imageReplacementText', '', errors),
        ),
        api_version=_require_str(raw, 'apiVersion', DEFAULT_API_VERSION, errors),
    )

    if errors:
        raise ConfigurationError(errors)
    return config


def load_config(config_path) -> MigrationConfig:
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Config file {config_path} is not valid YAML: {e}") from e

    return parse_config(raw or {})


def load_org_settings(prefix: str, label: str,
                      environ: Optional[Mapping[str, str]] = None) -> OrgSettings:
    """Read ``{prefix}_ORG_*`` variables for one org"""
    environ = os.environ if environ is None else environ

    def get(name: str) -> Optional[str]:
        value = environ.get(f"{prefix}_ORG_{name}")
        return value.strip() if value and value.strip() else None

    settings = OrgSettings(
        label=label,
        login_url=get('LOGIN_URL') or '',
        access_token=get('ACCESS_TOKEN'),
        username=get('USERNAME'),
        password=get('PASSWORD'),
        security_token=get('SECURITY_TOKEN'),
        instance_url=get('INSTANCE_URL'),
    )

    errors = []
    if not settings.login_url:
        errors.append(f"{prefix}_ORG_LOGIN_URL is not set")
    elif not settings.login_url.startswith(('https://', 'http://')):
        errors.append(f"{prefix}_ORG_LOGIN_URL must be an http(s) URL, got {settings.login_url!r}")
    else:
        settings.login_url = settings.login_url.rstrip('/')

    if not settings.access_token and not (settings.username and settings.password):
        errors.append(
            f"Set {prefix}_ORG_ACCESS_TOKEN or both {prefix}_ORG_USERNAME and {prefix}_ORG_PASSWORD"
        )

    if errors:
        raise ConfigurationError(errors)
    return settings


def load_environment(env_file: Optional[str] = None,
                     environ: Optional[Mapping[str, str]] = None) -> Dict[str, OrgSettings]:
    """Load ``.env`` and return settings for the source and target orgs"""
    if environ is None:
        if env_file and not Path(env_file).exists():
            raise ConfigurationError(f"Environment file not found: {env_file}")
        load_dotenv(env_file or find_dotenv(usecwd=True), override=False)

    errors = []
    orgs = {}
    for prefix, label in (('SOURCE', 'source'), ('TARGET', 'target')):
        try:
            orgs[label] = load_org_settings(prefix, label, environ)
        except ConfigurationError as e:
            errors.extend(e.messages)

    if errors:
        raise ConfigurationError(errors)
    return orgs
