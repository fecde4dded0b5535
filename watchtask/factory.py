from __future__ import annotations

from typing import Dict

from .transport import DEFAULT_IMPERSONATE, CurlTransport, RequestsTransport, Transport


class TransportFactory:
    """Factory for the HTTP transports a watch task fetches through.

    - RequestsTransport is stateless and cached by default.
    - CurlTransport defaults to a new instance per call; cache it only if
      all callers agree on the impersonation target.
    """

    def __init__(
        self,
        impersonate: str = DEFAULT_IMPERSONATE,
        cache_requests: bool = True,
        cache_curl: bool = False,
    ) -> None:
        self._impersonate = impersonate
        self._cache_requests = cache_requests
        self._cache_curl = cache_curl
        self._cache: Dict[str, Transport] = {}

    def create(self, kind: str = "requests") -> Transport:
        cache_allowed = (kind == "requests" and self._cache_requests) or (kind == "curl" and self._cache_curl)
        if cache_allowed and kind in self._cache:
            return self._cache[kind]

        if kind == "requests":
            transport: Transport = RequestsTransport()
        elif kind == "curl":
            transport = CurlTransport(impersonate=self._impersonate)
        else:
            raise ValueError(f"Unknown transport kind: {kind}")

        if cache_allowed:
            self._cache[kind] = transport
        return transport


_default_factory = TransportFactory()


def default_transport() -> Transport:
    return _default_factory.create("requests")
