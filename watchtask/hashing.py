from __future__ import annotations

import hashlib
from typing import Mapping, Optional, Union


def make_hash(headers: Optional[Mapping[str, str]], body: Union[bytes, str, None]) -> str:
    """Fingerprint a response as sha256(content-type + body), hex encoded.

    Header names are expected lower-cased, as produced by the transports.
    """
    content_type = (headers or {}).get("content-type") or ""
    if body is None:
        body = b""
    elif isinstance(body, str):
        body = body.encode("utf-8")

    digest = hashlib.sha256()
    digest.update(content_type.encode("utf-8"))
    digest.update(body)
    return digest.hexdigest()
