"""
Fastly TLS API client.

Implements the CertificatePlatform operations against Fastly's
``/tls/certificates`` and ``/tls/private_keys`` JSON:API endpoints.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import urljoin

import requests

from .config_loader import DEFAULT_API_URL, DEFAULT_TIMEOUT
from .logger import get_logger
from .remote import (
    AuthenticationError,
    CertificatePlatform,
    CreateCertificateResponse,
    InventoryPage,
    PlatformError,
    RemoteCertificateRecord,
    TransportError,
    UploadError,
)


JSONAPI_CONTENT_TYPE = "application/vnd.api+json"
CERTIFICATES_PATH = "/tls/certificates"
PRIVATE_KEYS_PATH = "/tls/private_keys"


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO 8601 timestamp as returned by the API.

    Returns:
        Timezone-aware datetime, or None if value is empty
    """
    if not value:
        return None
    if not isinstance(value, str):
        raise TransportError(f"Invalid timestamp in response: {value!r}")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise TransportError(f"Invalid timestamp in response: {value!r} ({e})")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _member(parent: Dict[str, Any], key: str, kind: type, cert_id: Any) -> Any:
    value = parent.get(key)
    if value is None:
        return kind()
    if not isinstance(value, kind):
        raise TransportError(f"Certificate {cert_id} has malformed {key}")
    return value


def parse_certificate_record(item: Dict[str, Any]) -> RemoteCertificateRecord:
    """
    Build a RemoteCertificateRecord from one JSON:API resource object.

    Args:
        item: Element of the response ``data`` array

    Returns:
        RemoteCertificateRecord

    Raises:
        TransportError: If the item has no id or is not shaped like a
            JSON:API resource object
    """
    if not isinstance(item, dict):
        raise TransportError(f"Unexpected certificate in response: {item!r}")

    cert_id = item.get("id")
    if not cert_id:
        raise TransportError("Certificate in response has no id")

    attributes = _member(item, "attributes", dict, cert_id)
    relationships = _member(item, "relationships", dict, cert_id)
    tls_domains = _member(relationships, "tls_domains", dict, cert_id)
    domain_data = _member(tls_domains, "data", list, cert_id)

    if not all(isinstance(d, dict) for d in domain_data):
        raise TransportError(f"Certificate {cert_id} has malformed tls_domains entries")

    return RemoteCertificateRecord(
        id=str(cert_id),
        domains=frozenset(d["id"] for d in domain_data if d.get("id")),
        not_after=_parse_timestamp(attributes.get("not_after")),
        name=attributes.get("name"),
    )


def parse_inventory_page(body: Any) -> InventoryPage:
    """
    Convert a ``GET /tls/certificates`` response body into an InventoryPage.

    Raises:
        TransportError: If the body is not a JSON:API document
    """
    if not isinstance(body, dict) or not isinstance(body.get("data"), list):
        raise TransportError("Unexpected certificate list response: missing data array")

    links = body.get("links") or {}
    if not isinstance(links, dict):
        raise TransportError("Unexpected certificate list response: malformed links")
    next_page_url = links.get("next")
    if next_page_url is not None and not isinstance(next_page_url, str):
        raise TransportError(f"Unexpected next link in certificate list: {next_page_url!r}")

    return InventoryPage(
        records=[parse_certificate_record(item) for item in body["data"]],
        next_page_url=next_page_url or None,
    )


class FastlyClient(CertificatePlatform):
    """
    Client for Fastly TLS certificate operations.

    Every method issues exactly one HTTP request. Nothing is retried.
    """

    inventory_url = CERTIFICATES_PATH

    def __init__(
        self,
        api_token: str,
        api_url: str = DEFAULT_API_URL,
        timeout: int = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the client.

        Args:
            api_token: Fastly API token, sent as the Fastly-Key header
            api_url: Base URL of the Fastly API
            timeout: Per-request timeout in seconds
            session: Optional pre-built requests session
        """
        self.api_url = api_url.rstrip("/") + "/"
        self.timeout = timeout
        self.logger = get_logger()
        self.session = session or requests.Session()
        self.session.headers.update({
            "Fastly-Key": api_token,
            "Accept": JSONAPI_CONTENT_TYPE,
            "User-Agent": "cdn-cert-updater",
        })

    def _url(self, path_or_url: str) -> str:
        # Pagination links are absolute; our own paths are relative
        return urljoin(self.api_url, path_or_url)

    def _request(self, method: str, path_or_url: str, **kwargs) -> requests.Response:
        url = self._url(path_or_url)
        self.logger.debug(f"{method} {url}")
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise TransportError(f"{method} {url} failed: {e}")

        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"Invalid Fastly API token provided ({response.status_code} {response.reason})"
            )
        return response

    @staticmethod
    def _describe(response: requests.Response) -> str:
        detail = ""
        try:
            errors = response.json().get("errors") or []
            detail = "; ".join(
                e.get("detail") or e.get("title") or "" for e in errors if isinstance(e, dict)
            )
        except (ValueError, AttributeError):
            pass
        status = f"{response.status_code} {response.reason}".strip()
        return f"{status}: {detail}" if detail else status

    def list_certificates(self, page_url: str) -> InventoryPage:
        response = self._request("GET", page_url)

        if not response.ok:
            raise TransportError(
                f"Listing certificates failed. Status: {self._describe(response)}"
            )

        try:
            body = response.json()
        except ValueError as e:
            raise TransportError(f"Certificate list is not valid JSON: {e}")

        return parse_inventory_page(body)

    def create_private_key(self, name: str, key_pem: bytes) -> str:
        payload = {
            "data": {
                "type": "tls_private_key",
                "attributes": {
                    "key": key_pem.decode("utf-8"),
                    "name": name,
                },
            }
        }

        response = self._request(
            "POST",
            PRIVATE_KEYS_PATH,
            json=payload,
            headers={"Content-Type": JSONAPI_CONTENT_TYPE},
        )

        if not response.ok:
            raise UploadError(
                f"Problem uploading private key. Status: {self._describe(response)}"
            )

        try:
            return str(response.json()["data"]["id"])
        except (ValueError, KeyError, TypeError):
            return ""

    def create_certificate(
        self,
        name: str,
        cert_blob: bytes,
        intermediates_blob: bytes,
    ) -> CreateCertificateResponse:
        payload = {
            "data": {
                "type": "tls_certificate",
                "attributes": {
                    "cert_blob": cert_blob.decode("utf-8"),
                    "intermediates_blob": intermediates_blob.decode("utf-8"),
                    "name": name,
                },
            }
        }

        response = self._request(
            "POST",
            CERTIFICATES_PATH,
            json=payload,
            headers={"Content-Type": JSONAPI_CONTENT_TYPE},
        )

        certificate_id = None
        if response.status_code == 201:
            try:
                certificate_id = str(response.json()["data"]["id"])
            except (ValueError, KeyError, TypeError):
                certificate_id = None

        return CreateCertificateResponse(
            status_code=response.status_code,
            reason=self._describe(response),
            certificate_id=certificate_id,
        )

    def delete_certificate(self, certificate_id: str) -> None:
        response = self._request("DELETE", f"{CERTIFICATES_PATH}/{certificate_id}")

        if not response.ok:
            raise PlatformError(
                f"Problem deleting certificate {certificate_id}. "
                f"Status: {self._describe(response)}"
            )
