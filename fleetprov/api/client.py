from typing import Any, TYPE_CHECKING
from urllib import parse

from ..log import FleetprovLogger
from ..osimage.errors import FleetAPIError, ManifestError
from ..osimage.manifest import DeviceTypeManifest
from ..osimage.target import ApplicationTarget, DeviceTarget

if TYPE_CHECKING:
    import requests


def api_url_join(base: str, *parts: str) -> str:
    """Joins URL-quoted path components onto the API base URL.

    >>> api_url_join("https://api.example.com/v1", "device", "a b")
    'https://api.example.com/v1/device/a%20b'
    """

    quoted = "/".join(parse.quote(p, safe="") for p in parts)
    if base.endswith("/"):
        return parse.urljoin(base, quoted)
    return parse.urljoin(base + "/", quoted)


class FleetClient:
    """Client of the fleet management HTTP API."""

    def __init__(
        self,
        logger: FleetprovLogger,
        api_url: str,
        token: str | None = None,
        timeout: int = 30,
    ) -> None:
        self._logger = logger
        self.api_url = api_url
        self._token = token
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        # import fleetprov.version here because this package is on the CLI
        # startup critical path
        from ..version import FLEETPROV_USER_AGENT

        headers = {
            "User-Agent": FLEETPROV_USER_AGENT,
            "Accept": "application/json",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _request(self, method: str, *path: str) -> "requests.Response":
        import requests

        url = api_url_join(self.api_url, *path)
        self._logger.D(f"{method} {url}")
        try:
            resp = requests.request(
                method,
                url,
                headers=self._headers(),
                allow_redirects=True,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise FleetAPIError(f"cannot reach the fleet API at {self.api_url}: {e}") from e

        self._logger.D(f"{method} {url}: status code {resp.status_code}")
        if resp.status_code in (401, 403):
            raise FleetAPIError(
                "the fleet API rejected the request; check the [yellow]api.token[/] config or the FLEETPROV_API_TOKEN environment variable",
                resp.status_code,
            )
        return resp

    def _get_json(self, what: str, *path: str) -> Any:
        resp = self._request("GET", *path)
        if resp.status_code == 404:
            raise FleetAPIError(f"{what} not found", resp.status_code)
        if not (200 <= resp.status_code < 300):
            raise FleetAPIError(
                f"failed to fetch {what}: status code {resp.status_code}",
                resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise FleetAPIError(f"malformed response while fetching {what}") from e

    def get_device(self, uuid: str) -> DeviceTarget:
        what = f"device {uuid}"
        data = self._get_json(what, "device", uuid)
        try:
            return DeviceTarget(
                uuid=data["uuid"],
                id=int(data["id"]),
                device_type=data["device_type"],
                application_id=data.get("application_id"),
                application_name=data.get("application_name"),
            )
        except (TypeError, KeyError, ValueError) as e:
            raise FleetAPIError(f"malformed response while fetching {what}") from e

    def get_application(self, name_or_slug: str) -> ApplicationTarget:
        what = f"application {name_or_slug}"
        data = self._get_json(what, "application", name_or_slug)
        try:
            return ApplicationTarget(
                slug=data["slug"],
                id=int(data["id"]),
                name=data.get("name") or data["slug"],
                device_type=data["device_type"],
            )
        except (TypeError, KeyError, ValueError) as e:
            raise FleetAPIError(f"malformed response while fetching {what}") from e

    def get_device_type_manifest(self, slug: str) -> DeviceTypeManifest:
        try:
            data = self._get_json(f"device type {slug}", "device-types", "v1", slug)
        except FleetAPIError as e:
            if e.status_code == 404:
                raise ManifestError(f"unknown device type '{slug}'") from e
            raise
        return DeviceTypeManifest.from_dict(data)

    def _generate_key(self, what: str, *path: str) -> str:
        resp = self._request("POST", *path)
        if not (200 <= resp.status_code < 300):
            raise FleetAPIError(
                f"failed to generate {what}: status code {resp.status_code}",
                resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError:
            data = resp.text

        key = data.get("key") if isinstance(data, dict) else data
        if not isinstance(key, str) or not key:
            raise FleetAPIError(f"malformed response while generating {what}")
        return key

    def generate_provisioning_key(self, application_id: int) -> str:
        return self._generate_key(
            "provisioning key",
            "api-key",
            "application",
            str(application_id),
            "provisioning",
        )

    def generate_device_key(self, device_id: int) -> str:
        return self._generate_key(
            "device key",
            "api-key",
            "device",
            str(device_id),
            "device-key",
        )
