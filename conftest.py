"""Shared fixtures for the site branding tests."""

from dataclasses import replace
from pathlib import Path
from typing import Dict, List

import pytest
from loguru import logger

from branding_config import BrandingConfig
from sharepoint_site_client import SharePointApiError


class FakeSiteClient:
    """In-memory stand-in for SharePointSiteClient that records every call."""

    def __init__(self, connect_failures=(), failures: Dict[str, List[Exception]] = None,
                 subsites: Dict[str, List[str]] = None):
        self.connect_failures = set(connect_failures)
        self.failures = {name: list(errors) for name, errors in (failures or {}).items()}
        self.subsites = subsites or {}
        self.calls = []
        self.connected_url = None

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        errors = self.failures.get(name)
        if errors:
            error = errors[0] if len(errors) == 1 else errors.pop(0)
            if error is not None:
                raise error

    def call_names(self):
        return [call[0] for call in self.calls]

    def connect(self, url):
        self._record("connect", url)
        if url in self.connect_failures:
            self.connected_url = None
            return False
        self.connected_url = url
        return True

    def disconnect(self):
        self.calls.append(("disconnect",))
        self.connected_url = None

    def ensure_folder(self, name):
        self._record("ensure_folder", name)
        return f"/sites/test/{name}"

    def upload_file(self, local_path, folder_name):
        self._record("upload_file", Path(local_path).name, folder_name)
        return f"/sites/test/{folder_name}/{Path(local_path).name}"

    def set_site_logo(self, url):
        self._record("set_site_logo", url)

    def set_site_logo_legacy(self, url):
        self._record("set_site_logo_legacy", url)

    def create_theme(self, name, palette):
        self._record("create_theme", name)

    def delete_theme(self, name):
        self._record("delete_theme", name)

    def apply_theme(self, name, palette):
        self._record("apply_theme", name)

    def apply_theme_direct(self, name, palette):
        self._record("apply_theme_direct", name)

    def list_subsites(self, web_url=None):
        web_url = web_url or self.connected_url
        self._record("list_subsites", web_url)
        return list(self.subsites.get(web_url, []))


def api_error(message="boom", status_code=500):
    return SharePointApiError(message, status_code=status_code)


@pytest.fixture
def fake_client():
    return FakeSiteClient()


@pytest.fixture
def logo_file(tmp_path):
    path = tmp_path / "logo.png"
    path.write_bytes(b"\x89PNG\r\n\x1a\nfake")
    return path


@pytest.fixture
def branding_config(logo_file):
    return BrandingConfig(
        tenant_name="contoso",
        logo_path=logo_file,
        color_theme_name="Blue",
        theme_name="Contoso Theme",
        max_retries=2,
        retry_initial_wait_seconds=0.01,
    )


@pytest.fixture
def make_config(branding_config):
    def _make(**changes):
        return replace(branding_config, **changes)
    return _make


@pytest.fixture
def log_records():
    records = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)

