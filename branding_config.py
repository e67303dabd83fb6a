#!/usr/bin/env python3
"""
Configuration for the SharePoint site branding tool.

Settings come from environment variables (optionally a .env file), are
checked by validate_config() and then frozen into BrandingConfig and
SiteCredentials for the rest of the run.
"""

import csv
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from loguru import logger


class ConfigurationError(Exception):
    """Settings are missing or invalid; the run cannot start."""


class InputFileError(Exception):
    """The site list file is missing, empty or malformed."""


@dataclass(frozen=True)
class SiteCredentials:
    tenant_id: str
    client_id: str
    certificate_thumbprint: Optional[str] = None
    certificate_path: Optional[str] = None
    client_secret: Optional[str] = None

    @property
    def uses_certificate(self) -> bool:
        return bool(self.certificate_thumbprint and self.certificate_path)


@dataclass(frozen=True)
class BrandingConfig:
    """Branding options for one run. Never modified once loaded."""
    tenant_name: str = ""
    logo_path: Optional[Path] = None
    change_logo: bool = True
    apply_theme_colors: bool = True
    apply_existing_theme: bool = False
    process_subsites: bool = False
    color_theme_name: str = "Green"
    theme_name: str = "Corporate Theme"
    overwrite_theme: bool = True
    asset_library: str = "SiteAssets"
    max_retries: int = 5
    retry_initial_wait_seconds: float = 2
    retry_backoff_factor: float = 2
    request_timeout: float = 60

    @property
    def admin_url(self) -> str:
        return f"https://{self.tenant_name}-admin.sharepoint.com"


def _env_bool(env: Mapping[str, str], name: str, default: str) -> bool:
    return env.get(name, default).strip().lower() in ("true", "1", "yes")


def load_config(env: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Load configuration from environment variables."""
    env = os.environ if env is None else env
    config = {}

    # Required configuration
    config['SP_TENANT_NAME'] = env.get('SP_TENANT_NAME')
    config['SP_TENANT_ID'] = env.get('SP_TENANT_ID')
    config['SP_CLIENT_ID'] = env.get('SP_CLIENT_ID')

    # Certificate (preferred) or client secret
    config['SP_CERTIFICATE_THUMBPRINT'] = env.get('SP_CERTIFICATE_THUMBPRINT')
    config['SP_CERTIFICATE_PATH'] = env.get('SP_CERTIFICATE_PATH')
    config['SP_CLIENT_SECRET'] = env.get('SP_CLIENT_SECRET')

    # Branding options
    config['BRANDING_LOGO_PATH'] = env.get('BRANDING_LOGO_PATH', '')
    config['BRANDING_CHANGE_LOGO'] = _env_bool(env, 'BRANDING_CHANGE_LOGO', 'true')
    config['BRANDING_APPLY_THEME_COLORS'] = _env_bool(env, 'BRANDING_APPLY_THEME_COLORS', 'true')
    config['BRANDING_APPLY_EXISTING_THEME'] = _env_bool(env, 'BRANDING_APPLY_EXISTING_THEME', 'false')
    config['BRANDING_PROCESS_SUBSITES'] = _env_bool(env, 'BRANDING_PROCESS_SUBSITES', 'false')
    config['BRANDING_COLOR_THEME'] = env.get('BRANDING_COLOR_THEME', 'Green')
    config['BRANDING_THEME_NAME'] = env.get('BRANDING_THEME_NAME', 'Corporate Theme')
    config['BRANDING_OVERWRITE_THEME'] = _env_bool(env, 'BRANDING_OVERWRITE_THEME', 'true')
    config['BRANDING_ASSET_LIBRARY'] = env.get('BRANDING_ASSET_LIBRARY', 'SiteAssets')

    # Retry and HTTP settings, kept as text until validated
    config['BRANDING_MAX_RETRIES'] = env.get('BRANDING_MAX_RETRIES', '5')
    config['BRANDING_RETRY_INITIAL_WAIT'] = env.get('BRANDING_RETRY_INITIAL_WAIT', '2')
    config['BRANDING_RETRY_BACKOFF_FACTOR'] = env.get('BRANDING_RETRY_BACKOFF_FACTOR', '2')
    config['BRANDING_REQUEST_TIMEOUT'] = env.get('BRANDING_REQUEST_TIMEOUT', '60')

    return config


def _parse_number(config: Dict[str, Any], key: str, cast, errors: List[str]):
    try:
        return cast(config.get(key))
    except (TypeError, ValueError):
        errors.append(f"{key} must be a number (got {config.get(key)!r})")
        return None


def validate_config(config: Dict[str, Any]) -> bool:
    """Validate configuration, logging every problem found."""
    errors = []

    # Check required fields
    for field in ('SP_TENANT_NAME', 'SP_TENANT_ID', 'SP_CLIENT_ID'):
        if not config.get(field):
            errors.append(f"{field} is required")

    # Check for placeholder values
    for field in ('SP_TENANT_NAME', 'SP_TENANT_ID', 'SP_CLIENT_ID', 'SP_CLIENT_SECRET'):
        value = str(config.get(field) or '')
        if value.startswith('your-') and value.endswith('-here'):
            errors.append(f"{field} contains placeholder value")

    has_certificate = config.get('SP_CERTIFICATE_THUMBPRINT') and config.get('SP_CERTIFICATE_PATH')
    if not has_certificate and not config.get('SP_CLIENT_SECRET'):
        errors.append("Set SP_CERTIFICATE_THUMBPRINT and SP_CERTIFICATE_PATH, or SP_CLIENT_SECRET")
    if has_certificate and not Path(config['SP_CERTIFICATE_PATH']).is_file():
        errors.append(f"Certificate file not found: {config['SP_CERTIFICATE_PATH']}")

    # Validate numeric values
    max_retries = _parse_number(config, 'BRANDING_MAX_RETRIES', int, errors)
    if max_retries is not None and max_retries < 0:
        errors.append("BRANDING_MAX_RETRIES must be 0 or greater")

    initial_wait = _parse_number(config, 'BRANDING_RETRY_INITIAL_WAIT', float, errors)
    if initial_wait is not None and initial_wait <= 0:
        errors.append("BRANDING_RETRY_INITIAL_WAIT must be greater than 0")

    backoff = _parse_number(config, 'BRANDING_RETRY_BACKOFF_FACTOR', float, errors)
    if backoff is not None and backoff < 1:
        errors.append("BRANDING_RETRY_BACKOFF_FACTOR must be 1 or greater")

    timeout = _parse_number(config, 'BRANDING_REQUEST_TIMEOUT', float, errors)
    if timeout is not None and timeout <= 0:
        errors.append("BRANDING_REQUEST_TIMEOUT must be greater than 0")

    if config.get('BRANDING_CHANGE_LOGO') and not config.get('BRANDING_LOGO_PATH'):
        errors.append("BRANDING_LOGO_PATH is required when BRANDING_CHANGE_LOGO is enabled")

    # Log errors
    if errors:
        logger.error("Configuration validation failed:")
        for error in errors:
            logger.error(f"  - {error}")
        return False

    return True


def build_branding_config(config: Dict[str, Any]) -> BrandingConfig:
    """Freeze a validated configuration dict into a BrandingConfig."""
    logo_path = config.get('BRANDING_LOGO_PATH')
    return BrandingConfig(
        tenant_name=config['SP_TENANT_NAME'],
        logo_path=Path(logo_path) if logo_path else None,
        change_logo=config['BRANDING_CHANGE_LOGO'],
        apply_theme_colors=config['BRANDING_APPLY_THEME_COLORS'],
        apply_existing_theme=config['BRANDING_APPLY_EXISTING_THEME'],
        process_subsites=config['BRANDING_PROCESS_SUBSITES'],
        color_theme_name=config['BRANDING_COLOR_THEME'],
        theme_name=config['BRANDING_THEME_NAME'],
        overwrite_theme=config['BRANDING_OVERWRITE_THEME'],
        asset_library=config['BRANDING_ASSET_LIBRARY'],
        max_retries=int(config['BRANDING_MAX_RETRIES']),
        retry_initial_wait_seconds=float(config['BRANDING_RETRY_INITIAL_WAIT']),
        retry_backoff_factor=float(config['BRANDING_RETRY_BACKOFF_FACTOR']),
        request_timeout=float(config['BRANDING_REQUEST_TIMEOUT']),
    )


def build_credentials(config: Dict[str, Any]) -> SiteCredentials:
    return SiteCredentials(
        tenant_id=config['SP_TENANT_ID'],
        client_id=config['SP_CLIENT_ID'],
        certificate_thumbprint=config.get('SP_CERTIFICATE_THUMBPRINT') or None,
        certificate_path=config.get('SP_CERTIFICATE_PATH') or None,
        client_secret=config.get('SP_CLIENT_SECRET') or None,
    )


def read_site_urls(csv_path) -> List[str]:
    """
    Read site collection URLs from a CSV file with a URL column.

    Any problem with the file is fatal: a missing file, no rows, no URL
    column, or a row without a URL raises InputFileError before a single
    site is touched. Duplicate URLs are dropped with a warning.
    """
    csv_path = Path(csv_path)
    if not csv_path.is_file():
        raise InputFileError(f"Input file not found: {csv_path}")

    try:
        with open(csv_path, newline='', encoding='utf-8-sig') as f:
            reader = csv.DictReader(f)
            headers = {(name or '').strip().lower(): name for name in (reader.fieldnames or [])}
            if not headers:
                raise InputFileError(f"Input file is empty: {csv_path}")
            if 'url' not in headers:
                raise InputFileError(f"Input file {csv_path} has no 'URL' column (found: {', '.join(reader.fieldnames)})")

            url_column = headers['url']
            urls = []
            seen = set()
            for line_number, row in enumerate(reader, start=2):
                url = (row.get(url_column) or '').strip()
                if not url:
                    raise InputFileError(f"Row {line_number} in {csv_path} has no URL")
                key = url.rstrip('/').lower()
                if key in seen:
                    logger.warning(f"Skipping duplicate URL on row {line_number}: {url}")
                    continue
                seen.add(key)
                urls.append(url)
    except (UnicodeDecodeError, csv.Error) as e:
        raise InputFileError(f"Input file {csv_path} could not be read as UTF-8 CSV: {e}") from e

    if not urls:
        raise InputFileError(f"Input file contains no site URLs: {csv_path}")

    return urls
