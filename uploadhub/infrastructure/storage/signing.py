"""
Request signing for S3-compatible object stores.

Two schemes are implemented here as pure functions:

- AWS Signature Version 4 (HMAC-SHA256 with a date-scoped derived key),
  as header auth and as presigned query auth.
- Legacy AWS Signature Version 2 (a single HMAC-SHA1 over a short canonical
  string), as header auth and as presigned query auth.

Nothing in this module does I/O or reads the clock unless asked to, so every
signature can be reproduced from its inputs alone. The output must match
what S3 computes byte for byte, which is why the canonical forms below are
spelled out exactly.
"""

import base64
import hashlib
import hmac
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping, Optional, Union
from urllib.parse import quote


V4_ALGORITHM = "AWS4-HMAC-SHA256"
V4_TERMINATOR = "aws4_request"
UNSIGNED_PAYLOAD = "UNSIGNED-PAYLOAD"
EMPTY_PAYLOAD_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
MAX_PRESIGN_EXPIRES = 7 * 24 * 3600

_WHITESPACE_RUN = re.compile(r"\s+")

BytesLike = Union[bytes, str]


def _to_bytes(data: BytesLike) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return data


def sha256_hex(data: BytesLike) -> str:
    return hashlib.sha256(_to_bytes(data)).hexdigest()


def hmac_sha256(key: BytesLike, msg: BytesLike) -> bytes:
    return hmac.new(_to_bytes(key), _to_bytes(msg), hashlib.sha256).digest()


def amz_timestamps(now: Optional[datetime] = None) -> tuple[str, str]:
    """Return `(amz_date, date_stamp)`, e.g. ("20130524T000000Z", "20130524")."""
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    amz_date = now.strftime("%Y%m%dT%H%M%SZ")
    return amz_date, amz_date[:8]


def uri_encode(value: str, encode_slash: bool = True) -> str:
    """
    S3 flavour of URI encoding.

    Unreserved characters (A-Z a-z 0-9 - _ . ~) pass through; everything
    else is percent-encoded with upper-case hex. Slashes are kept only when
    encoding an object key path.
    """
    safe = "-_.~" if encode_slash else "-_.~/"
    return quote(value, safe=safe)


def uri_encode_path(path: str) -> str:
    return uri_encode(path, encode_slash=False)


def canonical_query_string(params: Optional[Mapping[str, str]]) -> str:
    """Encode each name and value, then sort by encoded name."""
    if not params:
        return ""
    encoded = sorted(
        (uri_encode(str(k)), uri_encode(str(v))) for k, v in params.items()
    )
    return "&".join(f"{k}={v}" for k, v in encoded)


def canonicalize_headers(headers: Mapping[str, str]) -> tuple[str, str]:
    """
    Build the canonical header block and the signed-headers list.

    Header names are lower-cased and sorted; values are trimmed and inner
    runs of whitespace collapsed to one space. Every line ends with a
    newline, including the last.
    """
    normalized: dict[str, str] = {}
    for name, value in headers.items():
        normalized[name.strip().lower()] = _WHITESPACE_RUN.sub(" ", str(value).strip())
    names = sorted(normalized)
    canonical = "".join(f"{name}:{normalized[name]}\n" for name in names)
    return canonical, ";".join(names)


def build_canonical_request(
    method: str,
    canonical_uri: str,
    canonical_query: str,
    canonical_headers: str,
    signed_headers: str,
    payload_hash: str,
) -> str:
    return "\n".join([
        method.upper(),
        canonical_uri or "/",
        canonical_query,
        canonical_headers,
        signed_headers,
        payload_hash,
    ])


def credential_scope(date_stamp: str, region: str, service: str) -> str:
    return f"{date_stamp}/{region}/{service}/{V4_TERMINATOR}"


def build_string_to_sign(amz_date: str, scope: str, canonical_request: str) -> str:
    return "\n".join([
        V4_ALGORITHM,
        amz_date,
        scope,
        sha256_hex(canonical_request),
    ])


def derive_signing_key(secret_key: str, date_stamp: str, region: str, service: str) -> bytes:
    k_date = hmac_sha256("AWS4" + secret_key, date_stamp)
    k_region = hmac_sha256(k_date, region)
    k_service = hmac_sha256(k_region, service)
    return hmac_sha256(k_service, V4_TERMINATOR)


@dataclass(frozen=True)
class SigV4Signature:
    """All intermediate values of a V4 signing run, for logging and tests."""
    authorization: str
    signature: str
    signed_headers: str
    credential_scope: str
    canonical_request: str
    string_to_sign: str


def sign_v4(
    *,
    method: str,
    canonical_uri: str,
    canonical_query: str,
    headers: Mapping[str, str],
    payload_hash: str,
    region: str,
    service: str,
    access_key: str,
    secret_key: str,
    amz_date: str,
    date_stamp: Optional[str] = None,
) -> SigV4Signature:
    """
    Sign a request with AWS Signature Version 4.

    `headers` must already contain every header that is going to be sent
    and signed (host, x-amz-date, x-amz-content-sha256, ...). The returned
    `authorization` is the value for the Authorization header.
    """
    date_stamp = date_stamp or amz_date[:8]
    canonical_headers, signed_headers = canonicalize_headers(headers)
    canonical_request = build_canonical_request(
        method,
        canonical_uri,
        canonical_query,
        canonical_headers,
        signed_headers,
        payload_hash,
    )
    scope = credential_scope(date_stamp, region, service)
    string_to_sign = build_string_to_sign(amz_date, scope, canonical_request)
    signing_key = derive_signing_key(secret_key, date_stamp, region, service)
    signature = hmac.new(signing_key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()

    authorization = (
        f"{V4_ALGORITHM} Credential={access_key}/{scope}, "
        f"SignedHeaders={signed_headers}, Signature={signature}"
    )
    return SigV4Signature(
        authorization=authorization,
        signature=signature,
        signed_headers=signed_headers,
        credential_scope=scope,
        canonical_request=canonical_request,
        string_to_sign=string_to_sign,
    )


def presign_v4_query(
    *,
    method: str,
    canonical_uri: str,
    host: str,
    region: str,
    service: str,
    access_key: str,
    secret_key: str,
    amz_date: str,
    expires_in_seconds: int,
    extra_params: Optional[Mapping[str, str]] = None,
) -> str:
    """
    Build the query string for a V4 presigned URL.

    Only the host header is signed and the payload is declared unsigned,
    which is what S3 expects for browser-followable GET links.
    """
    date_stamp = amz_date[:8]
    expires = max(1, min(int(expires_in_seconds), MAX_PRESIGN_EXPIRES))
    scope = credential_scope(date_stamp, region, service)

    params: dict[str, str] = dict(extra_params or {})
    params.update({
        "X-Amz-Algorithm": V4_ALGORITHM,
        "X-Amz-Credential": f"{access_key}/{scope}",
        "X-Amz-Date": amz_date,
        "X-Amz-Expires": str(expires),
        "X-Amz-SignedHeaders": "host",
    })
    query = canonical_query_string(params)

    canonical_headers, signed_headers = canonicalize_headers({"host": host})
    canonical_request = build_canonical_request(
        method,
        canonical_uri,
        query,
        canonical_headers,
        signed_headers,
        UNSIGNED_PAYLOAD,
    )
    string_to_sign = build_string_to_sign(amz_date, scope, canonical_request)
    signing_key = derive_signing_key(secret_key, date_stamp, region, service)
    signature = hmac.new(signing_key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()
    return f"{query}&X-Amz-Signature={signature}"


# ---------------------------------------------------------------------------
# Legacy Signature Version 2
# ---------------------------------------------------------------------------

def canonicalize_amz_headers(headers: Mapping[str, str]) -> str:
    """
    Collect `x-amz-*` headers as sorted `name:value\\n` lines.

    Returns an empty string when there are none.
    """
    amz = {
        name.strip().lower(): str(value).strip()
        for name, value in headers.items()
        if name.strip().lower().startswith("x-amz-")
    }
    return "".join(f"{name}:{amz[name]}\n" for name in sorted(amz))


def string_to_sign_v2(
    method: str,
    canonicalized_resource: str,
    content_type: str = "",
    date: str = "",
    amz_headers: Optional[Mapping[str, str]] = None,
    content_md5: str = "",
) -> str:
    """
    METHOD, Content-MD5, Content-Type, Date, then amz headers glued
    directly onto the resource.

    For presigned URLs `date` carries the epoch expiry instead.
    """
    return "\n".join([
        method.upper(),
        content_md5,
        content_type,
        date,
        canonicalize_amz_headers(amz_headers or {}) + canonicalized_resource,
    ])


def sign_v2(secret_key: str, string_to_sign: str) -> str:
    digest = hmac.new(
        secret_key.encode("utf-8"),
        string_to_sign.encode("utf-8"),
        hashlib.sha1,
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def authorization_v2(access_key: str, signature: str) -> str:
    return f"AWS {access_key}:{signature}"


def presign_v2_query(
    *,
    access_key: str,
    secret_key: str,
    method: str,
    canonicalized_resource: str,
    expires_at: int,
) -> str:
    """Query string for a V2 presigned URL expiring at epoch `expires_at`."""
    to_sign = string_to_sign_v2(method, canonicalized_resource, date=str(expires_at))
    signature = sign_v2(secret_key, to_sign)
    return (
        f"AWSAccessKeyId={quote(access_key, safe='')}"
        f"&Expires={expires_at}"
        f"&Signature={quote(signature, safe='')}"
    )
