#!/usr/bin/env python3
"""
Branding Applicator
Uploads the logo and creates/applies the tenant theme on a connected site.

Logo problems stop the site (returns False); theme problems are logged and
swallowed so one bad theme call never keeps a site out of the summary.
"""

from typing import Callable, Optional

from loguru import logger

from retry_utils import Outcome, connect_with_retry, first_success, retry_call
from theme_catalog import ResolvedTheme, resolve_theme


class BrandingApplicator:
    """Applies logo and theme to the site the client is connected to."""

    def __init__(self, client, config, sleep: Optional[Callable[[float], None]] = None):
        self.client = client
        self.config = config
        self.sleep = sleep

    def _call(self, description: str, operation: Callable) -> Outcome:
        return retry_call(self.config, description, operation, sleep=self.sleep)

    def _connect(self, url: str) -> bool:
        return connect_with_retry(self.client, url, self.config, sleep=self.sleep)

    def apply(self, site_url: str) -> bool:
        """
        Apply branding to site_url.

        Returns:
            True when the site is branded well enough to count as a success,
            False on a hard stop (missing logo file, logo could not be set,
            admin or site reconnection failed)
        """
        config = self.config

        if not config.change_logo and not config.apply_theme_colors:
            logger.info(f"Nothing to apply for {site_url}: logo and theme changes are both disabled")
            return True

        if config.change_logo:
            if not self._apply_logo(site_url):
                return False
        else:
            logger.info(f"Skipping logo change for {site_url}")

        if config.apply_theme_colors and config.theme_name:
            try:
                if not self._apply_theme(site_url, resolve_theme(config)):
                    return False
            except Exception as e:
                logger.error(f"Theme step failed for {site_url}: {e}")
        elif config.apply_theme_colors:
            logger.info(f"No theme name configured, skipping theme for {site_url}")

        logger.info(f"Branding applied to {site_url}")
        return True

    def _apply_logo(self, site_url: str) -> bool:
        logo_path = self.config.logo_path
        if logo_path is None or not logo_path.is_file():
            logger.error(f"Logo file not found: {logo_path}")
            return False

        library = self.config.asset_library
        ensured = self._call(f"Ensure '{library}' on {site_url}",
                             lambda: self.client.ensure_folder(library))
        if not ensured.ok:
            logger.error(f"Could not prepare '{library}' on {site_url}: {ensured.error_message}")
            return False

        uploaded = self._call(f"Upload {logo_path.name} to {site_url}",
                              lambda: self.client.upload_file(logo_path, library))
        if not uploaded.ok:
            logger.error(f"Logo upload failed for {site_url}: {uploaded.error_message}")
            return False

        logo_url = uploaded.value
        logger.info(f"Uploaded logo to {logo_url}")

        result = first_success([
            ("site icon manager", lambda: self._call(f"Set site logo on {site_url}",
                                                     lambda: self.client.set_site_logo(logo_url))),
            ("SiteLogoUrl property", lambda: self._call(f"Set legacy site logo on {site_url}",
                                                        lambda: self.client.set_site_logo_legacy(logo_url))),
        ], description=f"Set logo on {site_url}")

        if not result.ok:
            logger.error(f"Could not set logo on {site_url}: {result.error_message}")
            return False

        logger.info(f"Logo set on {site_url}")
        return True

    def _apply_theme(self, site_url: str, theme: ResolvedTheme) -> bool:
        config = self.config
        admin_url = config.admin_url

        if not self._connect(admin_url):
            logger.error(f"Could not connect to tenant admin site {admin_url} while branding {site_url}")
            return False

        if not config.apply_existing_theme:
            if config.overwrite_theme:
                deleted = self._call(f"Delete theme '{theme.name}'",
                                     lambda: self.client.delete_theme(theme.name))
                if deleted.ok:
                    logger.info(f"Removed existing theme '{theme.name}'")
                else:
                    logger.info(f"Theme '{theme.name}' not removed (may not exist): {deleted.error_message}")

            created = self._call(f"Create theme '{theme.name}'",
                                 lambda: self.client.create_theme(theme.name, theme.palette))
            if created.ok:
                logger.info(f"Created theme '{theme.name}' from the {config.color_theme_name} palette")
            else:
                logger.error(f"Could not create theme '{theme.name}': {created.error_message}")
        else:
            logger.info(f"Using existing tenant theme '{theme.name}'")

        if not self._connect(site_url):
            logger.error(f"Could not reconnect to {site_url} after theme setup")
            return False

        applied = first_success([
            ("theme manager", lambda: self._call(f"Apply theme '{theme.name}' to {site_url}",
                                                 lambda: self.client.apply_theme(theme.name, theme.palette))),
            ("direct API call", lambda: self._call(f"Apply theme '{theme.name}' directly to {site_url}",
                                                   lambda: self.client.apply_theme_direct(theme.name, theme.palette))),
        ], description=f"Apply theme to {site_url}")

        if applied.ok:
            logger.info(f"Theme '{theme.name}' applied to {site_url}")
        else:
            logger.error(f"Could not apply theme '{theme.name}' to {site_url}: {applied.error_message}")

        return True


def apply_branding(client, site_url: str, config, sleep: Optional[Callable[[float], None]] = None) -> bool:
    return BrandingApplicator(client, config, sleep=sleep).apply(site_url)
