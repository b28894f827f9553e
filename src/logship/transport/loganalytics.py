"""Azure Log Analytics HTTP Data Collector client.

Each call posts one JSON payload to the workspace ingestion endpoint, signed
with the workspace shared key. Retries are left to the caller.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
from email.utils import formatdate

import httpx

from logship.errors import ConfigurationError, DeliveryError

API_VERSION = "2016-04-01"
RESOURCE = "/api/logs"
CONTENT_TYPE = "application/json"
DEFAULT_ENDPOINT_DOMAIN = "ods.opinsights.azure.com"


def build_signature(workspace_id: str, shared_key: bytes, date: str, content_length: int) -> str:
    string_to_sign = f"POST\n{content_length}\n{CONTENT_TYPE}\nx-ms-date:{date}\n{RESOURCE}"
    digest = hmac.new(shared_key, string_to_sign.encode("utf-8"), hashlib.sha256).digest()
    return f"SharedKey {workspace_id}:{base64.b64encode(digest).decode('ascii')}"


class LogAnalyticsClient:
    """Thread-safe ``DeliveryClient`` backed by one pooled ``httpx.Client``."""

    def __init__(
        self,
        workspace_id: str,
        workspace_key: str,
        *,
        endpoint_domain: str = DEFAULT_ENDPOINT_DOMAIN,
        time_generated_field: str = "",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if not workspace_id:
            raise ConfigurationError("Log Analytics workspace id is required")
        try:
            self._shared_key = base64.b64decode(workspace_key, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ConfigurationError("Log Analytics workspace key must be base64 encoded") from exc
        if not self._shared_key:
            raise ConfigurationError("Log Analytics workspace key is required")

        self.workspace_id = workspace_id
        self.url = f"https://{workspace_id}.{endpoint_domain}{RESOURCE}"
        self._time_generated_field = time_generated_field
        self._http = httpx.Client(timeout=timeout, transport=transport)
        self._logger = logger or logging.getLogger("logship.transport.loganalytics")

    def send(self, payload: str, stream_tag: str) -> None:
        body = payload.encode("utf-8")
        date = formatdate(usegmt=True)
        headers = {
            "Content-Type": CONTENT_TYPE,
            "Log-Type": stream_tag,
            "x-ms-date": date,
            "Authorization": build_signature(self.workspace_id, self._shared_key, date, len(body)),
        }
        if self._time_generated_field:
            headers["time-generated-field"] = self._time_generated_field

        try:
            response = self._http.post(self.url, params={"api-version": API_VERSION}, content=body, headers=headers)
        except httpx.HTTPError as exc:
            raise DeliveryError(f"Log Analytics request failed: {type(exc).__name__}: {exc}") from exc

        if response.status_code >= 300:
            raise DeliveryError(f"Log Analytics rejected payload: HTTP {response.status_code} {response.text[:200]}")
        self._logger.debug("payload_delivered", extra={"stream_tag": stream_tag, "bytes": len(body)})

    def close(self) -> None:
        self._http.close()
