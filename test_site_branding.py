#!/usr/bin/env python3
"""Tests for subsite discovery, the per-site loop and the command line entry point."""

import re
from unittest.mock import patch

import pytest
from loguru import logger

import site_branding
from conftest import FakeSiteClient, api_error
from sharepoint_site_client import ThrottledError
from site_branding import SiteBrandingRun, SiteTarget, detect_geo_location, list_all_subsites, main

ROOT = "https://contoso.sharepoint.com/sites/hr"
SUB_A = f"{ROOT}/benefits"
SUB_B = f"{ROOT}/payroll"
SUB_A1 = f"{SUB_A}/dental"


def _no_wait(_seconds):
    pass


def test_list_all_subsites_recurses_depth_first():
    client = FakeSiteClient(subsites={ROOT: [SUB_A, SUB_B], SUB_A: [SUB_A1]})

    assert list_all_subsites(client, ROOT) == [SUB_A, SUB_A1, SUB_B]
    assert client.calls[0] == ("connect", ROOT)
    assert client.calls[-1] == ("disconnect",)


def test_list_all_subsites_connection_failure_returns_empty():
    client = FakeSiteClient(connect_failures=[ROOT])

    assert list_all_subsites(client, ROOT) == []
    assert "list_subsites" not in client.call_names()


def test_list_all_subsites_keeps_partial_results_and_disconnects():
    client = FakeSiteClient(subsites={ROOT: [SUB_A, SUB_B]},
                            failures={"list_subsites": [None, api_error("denied", 403)]})

    assert list_all_subsites(client, ROOT) == [SUB_A]
    assert client.calls[-1] == ("disconnect",)


def test_subsite_expansion_builds_three_targets(make_config):
    client = FakeSiteClient(subsites={ROOT: [SUB_A, SUB_B]})
    run = SiteBrandingRun(client, make_config(process_subsites=True), sleep=_no_wait)

    targets = run.build_targets(ROOT)

    assert targets == [SiteTarget(ROOT, True), SiteTarget(SUB_A, False), SiteTarget(SUB_B, False)]


def test_subsites_are_branded_and_counted(make_config):
    client = FakeSiteClient(subsites={ROOT: [SUB_A, SUB_B]})
    config = make_config(process_subsites=True, apply_theme_colors=False)

    result = SiteBrandingRun(client, config, sleep=_no_wait).run([ROOT])

    assert result.total_sites == 3
    assert result.site_collections_processed == 1
    assert result.subsites_processed == 2
    assert result.success_count == 3
    assert result.failure_count == 0


def test_subsites_not_discovered_when_disabled(make_config):
    client = FakeSiteClient(subsites={ROOT: [SUB_A]})
    run = SiteBrandingRun(client, make_config(process_subsites=False), sleep=_no_wait)

    assert run.build_targets(ROOT) == [SiteTarget(ROOT, True)]
    assert client.calls == []


def test_connect_failure_does_not_stop_other_sites(make_config):
    first = "https://contoso.sharepoint.com/sites/one"
    second = "https://contoso.sharepoint.com/sites/two"
    third = "https://contoso.sharepoint.com/sites/three"
    client = FakeSiteClient(connect_failures=[second])
    config = make_config(change_logo=False, apply_theme_colors=False)

    result = SiteBrandingRun(client, config, sleep=_no_wait).run([first, second, third])

    connected = [call[1] for call in client.calls if call[0] == "connect"]
    assert connected == [first, second, third]
    assert result.total_sites == 3
    assert result.failure_count == 1
    assert result.success_count == 2
    assert result.site_collections_processed == 2


def test_every_connection_is_released(branding_config):
    client = FakeSiteClient(failures={
        "set_site_logo": [api_error("primary failed", 400)],
        "set_site_logo_legacy": [api_error("legacy failed", 400)],
    })

    result = SiteBrandingRun(client, branding_config, sleep=_no_wait).run([ROOT])

    assert result.failure_count == 1
    assert client.calls[-1] == ("disconnect",)


def test_unexpected_exception_is_tallied_as_failure(make_config):
    client = FakeSiteClient()
    config = make_config(change_logo=False, apply_theme_colors=False)
    run = SiteBrandingRun(client, config, sleep=_no_wait)

    with patch.object(site_branding, "apply_branding", side_effect=RuntimeError("kaboom")):
        result = run.run([ROOT, SUB_A])

    assert result.failure_count == 2
    assert client.call_names().count("disconnect") == 2


def test_dry_run_makes_no_changes(make_config):
    client = FakeSiteClient(subsites={ROOT: [SUB_A]})
    config = make_config(process_subsites=True)

    result = SiteBrandingRun(client, config, dry_run=True, sleep=_no_wait).run([ROOT])

    assert result.total_sites == 2
    assert result.success_count == 2
    assert set(client.call_names()) == {"connect", "list_subsites", "disconnect"}


@pytest.mark.parametrize("url, tenant, expected", [
    ("https://contosoEUR.sharepoint.com/sites/sales", "contoso", "Europe"),
    ("https://contosoapc-my.sharepoint.com/personal/jane", "contoso", "Asia-Pacific"),
    ("https://contoso.sharepoint.com/sites/sales", "contoso", None),
    ("https://contoso-my.sharepoint.com/personal/jane", "contoso", None),
    ("https://eur.sharepoint.com/sites/sales", "contoso", None),
    ("https://mexican.sharepoint.com/sites/sales", "mexican", None),
    ("https://fabrikamcan.sharepoint.com/sites/sales", "contoso", None),
    ("https://contosoxyz.sharepoint.com/sites/sales", "contoso", None),
])
def test_detect_geo_location(url, tenant, expected):
    assert detect_geo_location(url, tenant) == expected


def test_throttled_site_connection_is_retried(make_config):
    waits = []
    client = FakeSiteClient(failures={"connect": [ThrottledError("429", status_code=429), None]})
    config = make_config(change_logo=False, apply_theme_colors=False, retry_initial_wait_seconds=2)

    result = SiteBrandingRun(client, config, sleep=waits.append).run([ROOT])

    assert result.success_count == 1
    assert result.failure_count == 0
    assert waits == [2]


def test_throttled_subsite_listing_is_retried(make_config):
    waits = []
    client = FakeSiteClient(subsites={ROOT: [SUB_A, SUB_B], SUB_A: [SUB_A1]},
                            failures={"list_subsites": [None, ThrottledError("429", status_code=429), None]})
    config = make_config(retry_initial_wait_seconds=1)

    assert list_all_subsites(client, ROOT, config, sleep=waits.append) == [SUB_A, SUB_A1, SUB_B]
    assert waits == [1]
    assert client.call_names().count("list_subsites") == 5


# ----------------------------------------------------------------------
# Command line
# ----------------------------------------------------------------------

@pytest.fixture
def cli_env(monkeypatch, logo_file):
    monkeypatch.setenv("SP_TENANT_NAME", "contoso")
    monkeypatch.setenv("SP_TENANT_ID", "11111111-2222-3333-4444-555555555555")
    monkeypatch.setenv("SP_CLIENT_ID", "66666666-7777-8888-9999-000000000000")
    monkeypatch.setenv("SP_CLIENT_SECRET", "s3cret")
    monkeypatch.setenv("BRANDING_LOGO_PATH", str(logo_file))
    yield
    logger.remove()


def _run_main(tmp_path, *extra):
    return main(["--log-dir", str(tmp_path / "logs"), "--env-file", str(tmp_path / "missing.env"), *extra])


def test_main_aborts_on_missing_url_column(tmp_path, cli_env):
    csv_file = tmp_path / "sites.csv"
    csv_file.write_text("Site\nhttps://contoso.sharepoint.com/sites/a\n", encoding="utf-8")

    with patch.object(site_branding, "SharePointSiteClient") as client_class:
        assert _run_main(tmp_path, "--input", str(csv_file)) == 1

    client_class.assert_not_called()


def test_main_aborts_on_missing_input_file(tmp_path, cli_env):
    with patch.object(site_branding, "SharePointSiteClient") as client_class:
        assert _run_main(tmp_path, "--input", str(tmp_path / "nope.csv")) == 1

    client_class.assert_not_called()


def test_main_aborts_on_invalid_configuration(tmp_path, cli_env, monkeypatch):
    monkeypatch.delenv("SP_CLIENT_SECRET")
    csv_file = tmp_path / "sites.csv"
    csv_file.write_text(f"URL\n{ROOT}\n", encoding="utf-8")

    with patch.object(site_branding, "SharePointSiteClient") as client_class:
        assert _run_main(tmp_path, "--input", str(csv_file)) == 1

    client_class.assert_not_called()


def test_main_runs_every_site_and_exits_zero(tmp_path, cli_env):
    csv_file = tmp_path / "sites.csv"
    csv_file.write_text(f"URL\n{ROOT}\n{SUB_A}\n", encoding="utf-8")
    fake = FakeSiteClient(connect_failures=[SUB_A])

    with patch.object(site_branding, "SharePointSiteClient", return_value=fake):
        assert _run_main(tmp_path, "--input", str(csv_file), "--no-theme") == 0

    connected = [call[1] for call in fake.calls if call[0] == "connect"]
    assert connected == [ROOT, SUB_A]
    assert list((tmp_path / "logs").glob("site_branding_*.log"))


def test_log_file_lines_carry_timestamp_and_level(tmp_path, cli_env):
    csv_file = tmp_path / "sites.csv"
    csv_file.write_text(f"URL\n{ROOT}\n{SUB_A}\n", encoding="utf-8")

    with patch.object(site_branding, "SharePointSiteClient", return_value=FakeSiteClient()):
        _run_main(tmp_path, "--input", str(csv_file), "--no-theme")

    log_file = next((tmp_path / "logs").glob("site_branding_*.log"))
    lines = [line for line in log_file.read_text(encoding="utf-8").splitlines() if line]
    assert lines
    levels = []
    for line in lines:
        match = re.match(r"^\[\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\] \[(\w+)\] ", line)
        assert match, line
        levels.append(match.group(1))
    assert set(levels) <= {"INFO", "WARNING", "ERROR"}
    assert any(f"[INFO] Branding applied to {ROOT}" in line for line in lines)


def test_log_file_records_nothing_to_apply(tmp_path, cli_env):
    csv_file = tmp_path / "sites.csv"
    csv_file.write_text(f"URL\n{ROOT}\n", encoding="utf-8")

    with patch.object(site_branding, "SharePointSiteClient", return_value=FakeSiteClient()):
        _run_main(tmp_path, "--input", str(csv_file), "--no-theme", "--no-logo")

    log_file = next((tmp_path / "logs").glob("site_branding_*.log"))
    assert "[INFO] Nothing to apply" in log_file.read_text(encoding="utf-8")


def test_main_aborts_on_undecodable_input_file(tmp_path, cli_env):
    csv_file = tmp_path / "sites.csv"
    csv_file.write_bytes(b"URL\nhttps://contoso.sharepoint.com/sites/caf\xe9\n")

    with patch.object(site_branding, "SharePointSiteClient") as client_class:
        assert _run_main(tmp_path, "--input", str(csv_file)) == 1

    client_class.assert_not_called()


def test_list_themes(capsys):
    assert main(["--list-themes"]) == 0
    out = capsys.readouterr().out.split()
    assert "Green" in out and "DarkBlue" in out
