"""Mapillary destination adapter: upload sessions and sequence status."""
import logging

import requests

from .common import parse_iso_datetime, to_iso
from .constants import HTTP_TIMEOUT, MAPILLARY_API_URL, MAPILLARY_CLIENT_ID
from .errors import ExternalServiceError
from .models import Photo, Session

log = logging.getLogger(__name__)


class MapillaryClient:
    def __init__(
        self,
        base_url: str = MAPILLARY_API_URL,
        client_id: str = MAPILLARY_CLIENT_ID,
        session: requests.Session | None = None,
        timeout: float = HTTP_TIMEOUT,
    ):
        """
        Params:
            base_url: API root, e.g. https://a.mapillary.com/v3
            client_id: application client id sent with every request
            session: optional requests.Session for connection reuse
            timeout: per-request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.session = session or requests.Session()
        self.timeout = timeout

    def _headers(self, credential: str | None) -> dict[str, str]:
        if not credential:
            raise ExternalServiceError("No Mapillary token is stored. Set one with the 'token' command.")
        return {"Authorization": f"Bearer {credential}"}

    def _params(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        params = {"client_id": self.client_id} if self.client_id else {}
        if extra:
            params.update(extra)
        return params

    def _request(self, method: str, path: str, credential: str | None, **kwargs) -> dict:
        headers = self._headers(credential)
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise ExternalServiceError(f"Mapillary request failed: {exc}") from exc
        if response.status_code >= 400:
            raise ExternalServiceError(
                f"Mapillary returned {response.status_code}: {response.text[:200]}"
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ExternalServiceError("Mapillary returned a non-JSON response.") from exc

    def resolve_session(self, credential: str | None) -> Session:
        """Open an upload session and return its key."""
        data = self._request(
            "POST",
            "/me/uploads",
            credential,
            params=self._params(),
            json={"type": "images/sequence"},
        )
        key = data.get("key") if isinstance(data, dict) else None
        if not key:
            raise ExternalServiceError("Mapillary did not return an upload session key.")
        session: Session = {"key": str(key)}
        if data.get("url"):
            session["url"] = data["url"]
        if isinstance(data.get("fields"), dict):
            session["fields"] = data["fields"]
        log.info("Opened Mapillary upload session %s", key)
        return session

    def check_sequence_status(
        self,
        credential: str | None,
        external_sequence_id: str,
        photos: list[Photo],
    ) -> dict[str, bool]:
        """Report whether the service holds a sequence for these photos."""
        extra = {"per_page": "1"}
        if photos:
            times = sorted(parse_iso_datetime(photo["captured_at"]) for photo in photos)
            extra["start_time"] = to_iso(times[0])
            extra["end_time"] = to_iso(times[-1])
        data = self._request("GET", "/sequences", credential, params=self._params(extra))
        features = data.get("features") if isinstance(data, dict) else None
        log.debug("Status of %s: %d feature(s)", external_sequence_id, len(features or []))
        return {"linked": bool(features)}
