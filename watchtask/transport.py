from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from curl_cffi import requests as curl_requests
import requests


DEFAULT_IMPERSONATE = "chrome120"


@dataclass(frozen=True)
class HttpResponse:
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class Transport(ABC):
    """Outbound HTTP used by a watch task.

    Implementations return an HttpResponse for any HTTP status and let
    connection-level failures raise the client library's exception.
    """

    @abstractmethod
    def get(self, url: str, timeout: Optional[float] = None) -> HttpResponse:
        ...

    @abstractmethod
    def post(
        self,
        url: str,
        body: bytes,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        ...


class RequestsTransport(Transport):
    """Plain `requests` client. Holds no session, so one instance can be shared."""

    def get(self, url: str, timeout: Optional[float] = None) -> HttpResponse:
        resp = requests.get(url, timeout=timeout)
        return _to_response(resp)

    def post(
        self,
        url: str,
        body: bytes,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        resp = requests.post(url, data=body, headers=dict(headers or {}), timeout=timeout)
        return _to_response(resp)


class CurlTransport(Transport):
    """curl_cffi client impersonating a browser TLS fingerprint.

    For watched sites that reject the default python client. A fresh
    session is opened per request.
    """

    def __init__(self, impersonate: str = DEFAULT_IMPERSONATE) -> None:
        self._impersonate = impersonate

    def get(self, url: str, timeout: Optional[float] = None) -> HttpResponse:
        return self._request("GET", url, timeout=timeout)

    def post(
        self,
        url: str,
        body: bytes,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        return self._request("POST", url, body=body, headers=headers, timeout=timeout)

    def _request(
        self,
        method: str,
        url: str,
        body: Optional[bytes] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        session = curl_requests.Session()
        try:
            resp = session.request(
                method=method,
                url=url,
                data=body,
                headers=dict(headers) if headers else None,
                impersonate=self._impersonate,
                timeout=timeout,
            )
            return _to_response(resp)
        finally:
            session.close()


def _to_response(resp: Any) -> HttpResponse:
    headers = {str(k).lower(): str(v) for k, v in resp.headers.items()}
    return HttpResponse(
        status_code=int(resp.status_code),
        headers=headers,
        body=resp.content or b"",
    )
