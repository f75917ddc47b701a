import base64
import http.client
import importlib.metadata
import ssl
import threading
import urllib.parse
from typing import Dict, Optional, Tuple

try:
    DOHRACE_VERSION = importlib.metadata.version("dohrace")
except Exception:  # pragma: no cover - metadata missing when run from a checkout
    DOHRACE_VERSION = "unknown"

_DNS_CT = "application/dns-message"


class DoHError(Exception):
    """
    Brief: DNS-over-HTTPS transport error.

    Inputs:
    - message: Description of the error

    Outputs:
    - Exception instance
    """

    pass


class DoHStatusError(DoHError):
    """
    Brief: Upstream answered with a non-2xx HTTP status.

    Inputs:
    - status: HTTP status code
    - reason: HTTP reason phrase

    Outputs:
    - Exception instance with ``status`` attribute
    """

    def __init__(self, status: int, reason: str = "") -> None:
        super().__init__(f"HTTP {status}: {reason}")
        self.status = status


class DoHCancelled(DoHError):
    """Brief: The query was abandoned because its race already resolved."""

    pass


def _b64url_no_pad(data: bytes) -> str:
    """
    Brief: Base64url-encode without padding per RFC 8484.

    Inputs:
    - data: raw bytes to encode

    Outputs:
    - str: base64url string without '=' padding

    Example:
        >>> _b64url_no_pad(b"\x01\x02")
        'AQI'
    """
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _build_ssl_ctx(
    verify: bool = True, ca_file: Optional[str] = None
) -> Optional[ssl.SSLContext]:
    """
    Brief: Build SSLContext for HTTPS connections.

    Inputs:
    - verify: whether to verify TLS certs
    - ca_file: optional CA bundle path

    Outputs:
    - ssl.SSLContext
    """
    if not verify:
        return ssl._create_unverified_context()
    return (
        ssl.create_default_context(cafile=ca_file)
        if ca_file
        else ssl.create_default_context()
    )


def _check_cancel(cancel: Optional[threading.Event]) -> None:
    if cancel is not None and cancel.is_set():
        raise DoHCancelled("race already resolved")


def doh_query(
    url: str,
    query: bytes,
    *,
    method: str = "POST",
    headers: Optional[Dict[str, str]] = None,
    timeout_ms: int = 5000,
    verify: bool = True,
    ca_file: Optional[str] = None,
    cancel: Optional[threading.Event] = None,
) -> Tuple[bytes, Dict[str, str]]:
    """
    Brief: Perform a DNS-over-HTTPS query (RFC 8484) using the standard library.

    Inputs:
    - url: Target DoH endpoint, e.g. https://dns.google/dns-query
    - query: Wire-format DNS query bytes (opaque)
    - method: 'POST' or 'GET'
    - headers: Optional extra headers to include
    - timeout_ms: Socket timeout applied to connect and each read
    - verify: Verify TLS certificates (HTTPS only)
    - ca_file: Optional CA bundle path for verification
    - cancel: Optional event; when set before the request is sent the query
      is abandoned with DoHCancelled. A request already on the wire is not
      interrupted.

    Outputs:
    - (body, resp_headers): response body bytes and lower-cased headers

    Notes:
    - For POST: sends body as application/dns-message.
    - For GET: appends ?dns=<base64url> and sends Accept: application/dns-message.
    - Raises DoHStatusError for non-2xx responses, DoHError for network/TLS
      errors.

    Example:
        >>> try:
        ...     doh_query('https://example.invalid/dns-query', b'\x00\x01')
        ... except DoHError:
        ...     pass
    """
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in ("https", "http"):
        raise DoHError(f"Unsupported URL scheme: {parsed.scheme}")
    if not parsed.hostname:
        raise DoHError(f"Missing host in upstream URL: {url}")

    timeout = timeout_ms / 1000.0
    path = parsed.path or "/dns-query"
    extra_headers = {k: v for (k, v) in (headers or {}).items()}

    if not any(k.lower() == "user-agent" for k in extra_headers):
        extra_headers["User-Agent"] = f"dohrace/{DOHRACE_VERSION}"

    if method.upper() == "GET":
        qs = urllib.parse.parse_qs(parsed.query, keep_blank_values=True)
        qs["dns"] = [_b64url_no_pad(query)]
        qstr = urllib.parse.urlencode(
            [(k, v if isinstance(v, str) else v[0]) for k, v in qs.items()]
        )
        target = path + ("?" + qstr if qstr else "")
        body = None
        hdrs = {"Accept": _DNS_CT, **extra_headers}
    else:
        target = path + ("?" + parsed.query if parsed.query else "")
        body = query
        hdrs = {
            "Content-Type": _DNS_CT,
            "Accept": _DNS_CT,
            **extra_headers,
        }

    _check_cancel(cancel)
    try:
        if parsed.scheme == "https":
            ctx = _build_ssl_ctx(verify=verify, ca_file=ca_file)
            conn = http.client.HTTPSConnection(
                parsed.hostname,
                parsed.port or 443,
                timeout=timeout,
                context=ctx,
            )
        else:
            conn = http.client.HTTPConnection(
                parsed.hostname,
                parsed.port or 80,
                timeout=timeout,
            )
        try:
            conn.connect()
            _check_cancel(cancel)
            conn.request(method.upper(), target, body=body, headers=hdrs)
            resp = conn.getresponse()
            data = resp.read()
            if not 200 <= resp.status < 300:
                raise DoHStatusError(resp.status, resp.reason)
            headers_out = {k.lower(): v for k, v in resp.getheaders()}
            return data, headers_out
        finally:
            conn.close()
    except ssl.SSLError as e:
        raise DoHError(f"TLS error: {e}")
    except OSError as e:
        raise DoHError(f"Network error: {e}")
    except http.client.HTTPException as e:
        raise DoHError(f"HTTP protocol error: {e!r}")
