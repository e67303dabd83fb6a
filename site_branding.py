#!/usr/bin/env python3
"""
SharePoint Site Branding Tool

Applies a logo and a color theme to every site collection listed in a CSV
file (one URL column) and, optionally, to all of their subsites.
Authenticates app-only with a certificate or a client secret.

Usage:
    python3 site_branding.py --input sites.csv [--logo logo.png] [--color-theme Blue]
                             [--process-subsites] [--dry-run] [--verbose]

Example:
    uv run --env-file .env.branding site_branding.py --input sites.csv --process-subsites
"""

import argparse
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional
from urllib.parse import urlparse

from loguru import logger

from branding_applicator import apply_branding
from branding_config import (
    BrandingConfig,
    InputFileError,
    build_branding_config,
    build_credentials,
    load_config,
    read_site_urls,
    validate_config,
)
from retry_utils import connect_with_retry, retry_call
from sharepoint_site_client import SharePointSiteClient
from theme_catalog import theme_names

LOG_FORMAT = "[{time:YYYY-MM-DD HH:mm:ss}] [{level}] {message}"
CONSOLE_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>"

# Multi-geo tenants append a location code to the tenant part of the host
GEO_LOCATIONS = {
    "APC": "Asia-Pacific",
    "ARE": "United Arab Emirates",
    "AUS": "Australia",
    "BRA": "Brazil",
    "CAN": "Canada",
    "CHE": "Switzerland",
    "DEU": "Germany",
    "EUR": "Europe",
    "FRA": "France",
    "GBR": "United Kingdom",
    "IND": "India",
    "JPN": "Japan",
    "KOR": "Korea",
    "NAM": "North America",
    "NOR": "Norway",
    "ZAF": "South Africa",
}


@dataclass(frozen=True)
class SiteTarget:
    url: str
    is_site_collection: bool


@dataclass
class RunResult:
    total_sites: int = 0
    site_collections_processed: int = 0
    subsites_processed: int = 0
    success_count: int = 0
    failure_count: int = 0


def configure_logging(log_dir: Path, verbose: bool = False) -> Path:
    """Log to the console (colorized) and to a timestamped file."""
    logger.remove()
    logger.add(sys.stdout, format=CONSOLE_FORMAT, level="DEBUG" if verbose else "INFO", colorize=True)

    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"site_branding_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    logger.add(log_file, format=LOG_FORMAT, level="INFO", encoding="utf-8")
    return log_file


def detect_geo_location(site_url: str, tenant_name: str) -> Optional[str]:
    """Name the multi-geo location of a host shaped like <tenant><GEO>[-my].sharepoint.com, if any."""
    host = urlparse(site_url).netloc.lower()
    label = host.split(".")[0]
    if label.endswith("-my"):
        label = label[:-len("-my")]
    tenant = tenant_name.lower()
    if not tenant or not label.startswith(tenant):
        return None
    return GEO_LOCATIONS.get(label[len(tenant):].upper())


def list_all_subsites(client, site_collection_url: str, config: Optional[BrandingConfig] = None,
                      sleep: Optional[Callable[[float], None]] = None) -> List[str]:
    """
    Return every subsite below a site collection, depth first.

    Connects to the collection for the enumeration and always disconnects
    before returning. Throttled calls are retried with the retry settings of
    config. Connection problems yield an empty list; enumeration problems
    yield whatever was found so far.
    """
    config = config or BrandingConfig()
    if not connect_with_retry(client, site_collection_url, config, sleep=sleep):
        logger.error(f"Cannot enumerate subsites: connection to {site_collection_url} failed")
        return []

    subsites: List[str] = []
    try:
        _collect_subsites(client, site_collection_url, subsites, config, sleep)
    except Exception as e:
        logger.error(f"Subsite enumeration under {site_collection_url} stopped early: {e}")
    finally:
        client.disconnect()

    logger.info(f"Found {len(subsites)} subsites under {site_collection_url}")
    return subsites


def _collect_subsites(client, web_url: str, found: List[str], config: BrandingConfig,
                      sleep: Optional[Callable[[float], None]]):
    listed = retry_call(config, f"List subsites of {web_url}", lambda: client.list_subsites(web_url), sleep=sleep)
    if not listed.ok:
        raise listed.error
    for child_url in listed.value:
        found.append(child_url)
        logger.debug(f"  Subsite: {child_url}")
        _collect_subsites(client, child_url, found, config, sleep)


class SiteBrandingRun:
    """Brands every site collection (and optionally subsites) in order, one at a time."""

    def __init__(self, client, config: BrandingConfig, dry_run: bool = False,
                 sleep: Optional[Callable[[float], None]] = None):
        self.client = client
        self.config = config
        self.dry_run = dry_run
        self.sleep = sleep
        self.result = RunResult()
        self.start_time = datetime.now()

    def build_targets(self, site_collection_url: str) -> List[SiteTarget]:
        targets = [SiteTarget(site_collection_url, True)]
        if self.config.process_subsites:
            subsites = list_all_subsites(self.client, site_collection_url, self.config, sleep=self.sleep)
            targets.extend(SiteTarget(url, False) for url in subsites)
        return targets

    def process_target(self, target: SiteTarget) -> bool:
        kind = "site collection" if target.is_site_collection else "subsite"
        location = detect_geo_location(target.url, self.config.tenant_name)
        if location:
            logger.info(f"    {target.url} looks like a {location} geo location")

        if self.dry_run:
            logger.info(f"    Dry run: would brand {kind} {target.url}")
            self._count_processed(target, True)
            return True

        if not connect_with_retry(self.client, target.url, self.config, sleep=self.sleep):
            logger.error(f"    Skipping {kind} {target.url}: connection failed")
            self.result.failure_count += 1
            return False

        success = False
        try:
            success = apply_branding(self.client, target.url, self.config, sleep=self.sleep)
        except Exception as e:
            logger.error(f"    Unexpected error while branding {target.url}: {e}")
        finally:
            self.client.disconnect()

        if not success:
            logger.error(f"    Branding failed for {kind} {target.url}")
        self._count_processed(target, success)
        return success

    def _count_processed(self, target: SiteTarget, success: bool):
        if target.is_site_collection:
            self.result.site_collections_processed += 1
        else:
            self.result.subsites_processed += 1

        if success:
            self.result.success_count += 1
        else:
            self.result.failure_count += 1

    def run(self, site_urls: List[str]) -> RunResult:
        logger.info("=" * 80)
        logger.info(f"Starting site branding for {len(site_urls)} site collections")
        logger.info(f"Color theme: {self.config.color_theme_name} | Theme name: {self.config.theme_name}")
        logger.info(f"Change logo: {self.config.change_logo} | Apply theme: {self.config.apply_theme_colors} "
                    f"| Subsites: {self.config.process_subsites}")
        if self.dry_run:
            logger.info("Dry run: no changes will be made")
        logger.info("=" * 80)

        for i, site_url in enumerate(site_urls, 1):
            logger.info(f"[{i}/{len(site_urls)}] Processing site collection: {site_url}")
            try:
                targets = self.build_targets(site_url)
            except Exception as e:
                logger.error(f"Could not prepare targets for {site_url}: {e}")
                targets = [SiteTarget(site_url, True)]

            self.result.total_sites += len(targets)
            for target in targets:
                self.process_target(target)

        self.print_summary()
        return self.result

    def print_summary(self):
        duration = datetime.now() - self.start_time
        result = self.result

        logger.info("=" * 80)
        logger.info("BRANDING SUMMARY")
        logger.info("=" * 80)
        logger.info(f"Duration: {duration}")
        logger.info(f"Total sites: {result.total_sites}")
        logger.info(f"Site collections processed: {result.site_collections_processed}")
        logger.info(f"Subsites processed: {result.subsites_processed}")
        logger.info(f"Successful: {result.success_count}")
        if result.failure_count:
            logger.warning(f"Failed: {result.failure_count}")
        else:
            logger.info(f"Failed: {result.failure_count}")
        if self.dry_run:
            logger.info("NOTE: This was a dry run. No changes were made.")
        logger.info("=" * 80)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description='Apply a logo and color theme to SharePoint Online sites listed in a CSV file'
    )

    parser.add_argument('--input', '-i', default='sites.csv',
                        help='CSV file with a URL column (default: sites.csv)')
    parser.add_argument('--env-file', default='.env',
                        help='Environment file with credentials and settings (default: .env)')
    parser.add_argument('--logo',
                        help='Logo image to upload (overrides BRANDING_LOGO_PATH)')
    parser.add_argument('--color-theme',
                        help='Palette name (overrides BRANDING_COLOR_THEME)')
    parser.add_argument('--theme-name',
                        help='Tenant theme name (overrides BRANDING_THEME_NAME)')
    parser.add_argument('--process-subsites', action='store_true',
                        help='Also brand every subsite of each site collection')
    parser.add_argument('--no-logo', action='store_true',
                        help='Do not change the site logo')
    parser.add_argument('--no-theme', action='store_true',
                        help='Do not create or apply a theme')
    parser.add_argument('--apply-existing-theme', action='store_true',
                        help='Apply an existing tenant theme instead of recreating it')
    parser.add_argument('--log-dir', default='logs',
                        help='Directory for log files (default: logs)')
    parser.add_argument('--dry-run', action='store_true',
                        help='Show which sites would be branded without making changes')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose output')
    parser.add_argument('--list-themes', action='store_true',
                        help='List the available color themes and exit')

    return parser.parse_args(argv)


def apply_cli_overrides(config: dict, args: argparse.Namespace) -> dict:
    """Return a copy of the loaded configuration with command-line flags applied."""
    config = dict(config)
    if args.logo:
        config['BRANDING_LOGO_PATH'] = args.logo
    if args.color_theme:
        config['BRANDING_COLOR_THEME'] = args.color_theme
    if args.theme_name:
        config['BRANDING_THEME_NAME'] = args.theme_name
    if args.process_subsites:
        config['BRANDING_PROCESS_SUBSITES'] = True
    if args.no_logo:
        config['BRANDING_CHANGE_LOGO'] = False
    if args.no_theme:
        config['BRANDING_APPLY_THEME_COLORS'] = False
    if args.apply_existing_theme:
        config['BRANDING_APPLY_EXISTING_THEME'] = True
    return config


def main(argv=None) -> int:
    """Command-line interface."""
    args = parse_args(argv)

    if args.list_themes:
        for name in theme_names():
            print(name)
        return 0

    log_file = configure_logging(Path(args.log_dir), args.verbose)
    logger.info(f"Logging to {log_file}")

    # Try to load environment variables from .env file
    try:
        from dotenv import load_dotenv
        if Path(args.env_file).is_file():
            load_dotenv(args.env_file)
            logger.info(f"Loaded environment variables from {args.env_file}")
    except ImportError:
        logger.warning("python-dotenv not installed. Using system environment variables.")

    config = apply_cli_overrides(load_config(), args)
    if not validate_config(config):
        return 1

    try:
        site_urls = read_site_urls(args.input)
    except InputFileError as e:
        logger.error(str(e))
        return 1

    logger.info(f"Loaded {len(site_urls)} site collections from {args.input}")

    branding_config = build_branding_config(config)
    credentials = build_credentials(config)
    logger.info(f"Authenticating as app {credentials.client_id[:8]}... using "
                f"{'certificate' if credentials.uses_certificate else 'client secret'}")

    try:
        client = SharePointSiteClient(credentials, request_timeout=branding_config.request_timeout)
        SiteBrandingRun(client, branding_config, dry_run=args.dry_run).run(site_urls)
    except KeyboardInterrupt:
        logger.info("Branding interrupted by user")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
