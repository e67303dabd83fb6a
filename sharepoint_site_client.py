#!/usr/bin/env python3
"""
SharePoint Site Client
Thin SharePoint REST client used by the branding tool.

Authenticates app-only through msal (certificate or client secret), keeps a
single "current site" connection, and exposes the handful of calls the
branding workflow needs: asset library, file upload, site logo, tenant
themes and subsite enumeration.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import requests
from loguru import logger
from msal import ConfidentialClientApplication
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from theme_catalog import theme_json

JSON_NOMETADATA = "application/json;odata=nometadata"
JSON_VERBOSE = "application/json;odata=verbose"


class SharePointApiError(Exception):
    """A SharePoint REST call returned an error or an unusable response."""

    def __init__(self, message: str, status_code: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class ThrottledError(SharePointApiError):
    """SharePoint asked us to slow down (429 / 503)."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 url: Optional[str] = None, retry_after: Optional[str] = None):
        super().__init__(message, status_code, url)
        self.retry_after = retry_after


def _odata_quote(value: str) -> str:
    """Escape a value for use inside a single-quoted OData string literal."""
    return value.replace("'", "''")


class SharePointSiteClient:
    """Handles REST calls against one connected SharePoint site at a time."""

    def __init__(self, credentials, request_timeout: float = 60,
                 connection_retries: int = 3, session: Optional[requests.Session] = None):
        """
        Initialize the client.

        Args:
            credentials: SiteCredentials with tenant, app id and certificate or secret
            request_timeout: Seconds before an HTTP call is abandoned
            connection_retries: Connection-level retries done by the HTTP adapter
            session: Optional pre-built requests session
        """
        self.credentials = credentials
        self.request_timeout = request_timeout
        self.session = session or self._setup_session(connection_retries)
        self._app = None
        self._site_url: Optional[str] = None
        self._web_relative_url: Optional[str] = None

    @staticmethod
    def _setup_session(connection_retries: int) -> requests.Session:
        """Setup HTTP session retrying dropped connections only.

        Throttling responses are left to the caller's backoff loop.
        """
        retry_strategy = Retry(
            total=connection_retries,
            connect=connection_retries,
            read=0,
            status=0,
            backoff_factor=1,
            allowed_methods=["GET", "POST"],
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session = requests.Session()
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        return session

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def _client_credential(self):
        creds = self.credentials
        if creds.certificate_thumbprint and creds.certificate_path:
            private_key = Path(creds.certificate_path).read_text(encoding="utf-8")
            return {"thumbprint": creds.certificate_thumbprint, "private_key": private_key}
        return creds.client_secret

    def _get_app(self) -> ConfidentialClientApplication:
        if self._app is None:
            self._app = ConfidentialClientApplication(
                client_id=self.credentials.client_id,
                client_credential=self._client_credential(),
                authority=f"https://login.microsoftonline.com/{self.credentials.tenant_id}",
            )
        return self._app

    def _get_access_token(self, site_url: str) -> str:
        """Get an app-only token for the SharePoint host serving site_url."""
        host = urlparse(site_url).netloc
        scopes = [f"https://{host}/.default"]
        result = self._get_app().acquire_token_for_client(scopes=scopes)

        if "access_token" in result:
            return result["access_token"]

        error = result.get("error_description", result.get("error"))
        raise SharePointApiError(f"Token request for {host} failed: {error}", url=site_url)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    @property
    def connected_url(self) -> Optional[str]:
        return self._site_url

    def connect(self, site_url: str) -> bool:
        """
        Connect to a site; returns False (and logs) when the site cannot be reached.

        ThrottledError propagates so callers can wait and try again.
        """
        site_url = site_url.rstrip("/")
        self.disconnect()
        try:
            data = self._send("GET", site_url, "/_api/web?$select=Title,Url,ServerRelativeUrl").json()
        except ThrottledError:
            raise
        except Exception as e:
            logger.error(f"Failed to connect to {site_url}: {e}")
            return False

        self._site_url = site_url
        self._web_relative_url = data.get("ServerRelativeUrl") or urlparse(site_url).path or "/"
        logger.info(f"Connected to site: {data.get('Title', site_url)} ({site_url})")
        return True

    def disconnect(self):
        if self._site_url:
            logger.debug(f"Disconnected from {self._site_url}")
        self._site_url = None
        self._web_relative_url = None

    def _require_connection(self) -> str:
        if not self._site_url:
            raise SharePointApiError("Not connected to a site")
        return self._site_url

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _send(self, method: str, site_url: str, path: str,
              accept: str = JSON_NOMETADATA, headers: Optional[Dict[str, str]] = None,
              **kwargs) -> requests.Response:
        """
        Make a SharePoint REST request and raise on any non-2xx answer.

        Args:
            method: HTTP method
            site_url: Absolute URL of the web the call is scoped to
            path: REST path starting with /_api
            accept: OData flavour for Accept / Content-Type
            headers: Extra headers
            **kwargs: Additional arguments for requests

        Returns:
            Response object
        """
        url = f"{site_url}{path}"
        request_headers = {
            "Authorization": f"Bearer {self._get_access_token(site_url)}",
            "Accept": accept,
        }
        if "json" in kwargs:
            request_headers["Content-Type"] = accept
        if headers:
            request_headers.update(headers)

        try:
            response = self.session.request(method, url, headers=request_headers,
                                            timeout=self.request_timeout, **kwargs)
        except requests.RequestException as e:
            raise SharePointApiError(f"{method} {url} failed: {e}", url=url) from e

        if response.status_code in (429, 503):
            retry_after = response.headers.get("Retry-After")
            raise ThrottledError(
                f"{method} {url} throttled ({response.status_code}, Retry-After: {retry_after})",
                status_code=response.status_code, url=url, retry_after=retry_after)

        if response.status_code >= 400:
            raise SharePointApiError(
                f"{method} {url} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code, url=url)

        return response

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        return self._send(method, self._require_connection(), path, **kwargs)

    # ------------------------------------------------------------------
    # Files and logo
    # ------------------------------------------------------------------

    def _folder_relative_url(self, folder_name: str) -> str:
        return f"{(self._web_relative_url or '').rstrip('/')}/{folder_name}"

    def ensure_folder(self, folder_name: str) -> str:
        """Make sure the asset library exists on the current site; returns its server-relative URL."""
        folder_url = self._folder_relative_url(folder_name)
        quoted = _odata_quote(folder_url)

        exists = False
        try:
            data = self._request("GET", f"/_api/web/GetFolderByServerRelativeUrl('{quoted}')?$select=Exists").json()
            exists = bool(data.get("Exists"))
        except SharePointApiError as e:
            if e.status_code not in (404, 500) or isinstance(e, ThrottledError):
                raise

        if exists:
            logger.debug(f"Asset library already present: {folder_url}")
            return folder_url

        logger.info(f"Creating asset library '{folder_name}' on {self._site_url}")
        if folder_name == "SiteAssets":
            self._request("POST", "/_api/web/lists/EnsureSiteAssetsLibrary()")
        else:
            self._request("POST", "/_api/web/lists",
                          json={"Title": folder_name, "BaseTemplate": 101})
        return folder_url

    def upload_file(self, local_path, folder_name: str) -> str:
        """Upload a local file into folder_name, overwriting; returns the file's server-relative URL."""
        local_path = Path(local_path)
        folder_url = _odata_quote(self._folder_relative_url(folder_name))
        file_name = _odata_quote(local_path.name)

        response = self._request(
            "POST",
            f"/_api/web/GetFolderByServerRelativeUrl('{folder_url}')/Files/add(url='{file_name}',overwrite=true)",
            data=local_path.read_bytes(),
        )
        server_relative_url = response.json().get("ServerRelativeUrl")
        if not server_relative_url:
            raise SharePointApiError(f"Upload of {local_path.name} returned no URL")
        return server_relative_url

    def set_site_logo(self, logo_url: str):
        """Set the site logo through the site icon manager (modern sites)."""
        self._request("POST", "/_api/siteiconmanager/setsitelogo",
                      json={"relativeLogoUrl": logo_url, "type": 0, "aspect": 0})

    def set_site_logo_legacy(self, logo_url: str):
        """Set the SiteLogoUrl property on the web (classic sites)."""
        self._request("POST", "/_api/web",
                      accept=JSON_VERBOSE,
                      headers={"X-HTTP-Method": "MERGE", "IF-MATCH": "*"},
                      json={"__metadata": {"type": "SP.Web"}, "SiteLogoUrl": logo_url})

    # ------------------------------------------------------------------
    # Themes
    # ------------------------------------------------------------------

    def create_theme(self, name: str, palette: Dict[str, str]):
        """Add a tenant theme (admin site connection required)."""
        data = self._request("POST", "/_api/thememanager/AddTenantTheme",
                             json={"name": name, "themeJson": theme_json(palette)}).json()
        if data.get("value") is False:
            raise SharePointApiError(f"Tenant theme '{name}' was not created")

    def delete_theme(self, name: str):
        """Remove a tenant theme (admin site connection required)."""
        self._request("POST", "/_api/thememanager/DeleteTenantTheme", json={"name": name})

    def apply_theme(self, name: str, palette: Dict[str, str]):
        """Apply a theme to the current site through the theme manager."""
        self._request("POST", "/_api/ThemeManager/ApplyTheme",
                      json={"name": name, "themeJson": theme_json(palette)})

    def apply_theme_direct(self, name: str, palette: Dict[str, str]):
        """Apply a theme through the fully qualified SP.Utilities entry point."""
        self._request("POST", "/_api/SP.Utilities.ThemeManager.ApplyTheme",
                      json={"name": name, "themeJson": theme_json(palette)})

    # ------------------------------------------------------------------
    # Subsites
    # ------------------------------------------------------------------

    def list_subsites(self, web_url: Optional[str] = None) -> List[str]:
        """List the direct child webs of web_url (defaults to the connected site)."""
        web_url = (web_url or self._require_connection()).rstrip("/")
        subsites = []
        path: Optional[str] = "/_api/web/webs?$select=Title,Url"

        while path:
            data: Dict[str, Any] = self._send("GET", web_url, path).json()
            subsites.extend(web["Url"] for web in data.get("value", []) if web.get("Url"))

            next_link = data.get("odata.nextLink")
            path = next_link[len(web_url):] if next_link and next_link.startswith(web_url) else None

        return subsites
