"""Immutable, case-insensitive HTTP headers and proxy header rules.

``Headers`` implements ``Mapping[str, str]`` over the raw byte pairs from
the ASGI scope and decodes on access.

Forwarding is append-only: client headers pass through except hop-by-hop
headers (which only describe the client connection) and the fields the
proxy owns: ``Host``, ``X-Real-IP``,
``X-Forwarded-Proto`` and the recomputed ``Content-Length``.
``X-Forwarded-For`` is extended, never replaced.
"""

from collections.abc import Iterable, Iterator, Mapping

type RawHeaders = tuple[tuple[bytes, bytes], ...]

# RFC 9110 §7.6.1 plus the de-facto proxy ones.
HOP_BY_HOP: frozenset[str] = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "proxy-connection",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)

# Set by the proxy on every forwarded request.
_OWNED: frozenset[str] = frozenset(
    {"host", "x-real-ip", "x-forwarded-proto", "x-forwarded-for", "content-length"}
)


class Headers(Mapping[str, str]):
    """Immutable, case-insensitive HTTP headers.

    ``__getitem__`` returns the first matching value.
    ``get_list`` returns all values for a header (e.g. multiple ``X-Forwarded-For``).
    """

    __slots__ = ("_raw",)

    def __init__(self, raw: Iterable[tuple[bytes, bytes]] = ()) -> None:
        object.__setattr__(self, "_raw", tuple(raw))

    def __getitem__(self, key: str) -> str:
        key_lower = key.lower().encode("latin-1")
        for name, value in self._raw:
            if name.lower() == key_lower:
                return value.decode("latin-1")
        raise KeyError(key)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        key_lower = key.lower().encode("latin-1")
        return any(name.lower() == key_lower for name, _ in self._raw)

    def __iter__(self) -> Iterator[str]:
        seen: set[str] = set()
        for name, _ in self._raw:
            key = name.decode("latin-1").lower()
            if key not in seen:
                seen.add(key)
                yield key

    def __len__(self) -> int:
        return len(set(self))

    def __repr__(self) -> str:
        items = ", ".join(f"{k!r}: {self[k]!r}" for k in self)
        return f"Headers({{{items}}})"

    def get(self, key: str, default: str | None = None) -> str | None:  # type: ignore[override]
        """Return the first value for *key*, or *default* if missing."""
        try:
            return self[key]
        except KeyError:
            return default

    def get_list(self, key: str) -> list[str]:
        """Return all values for *key*."""
        key_lower = key.lower().encode("latin-1")
        return [value.decode("latin-1") for name, value in self._raw if name.lower() == key_lower]

    @property
    def raw(self) -> RawHeaders:
        """Access raw header byte pairs for ASGI compatibility."""
        return self._raw


def _connection_tokens(raw: Iterable[tuple[bytes, bytes]]) -> set[str]:
    """Header names a ``Connection`` header marks as hop-by-hop."""
    tokens: set[str] = set()
    for name, value in raw:
        if name.lower() == b"connection":
            tokens.update(
                t.strip().lower() for t in value.decode("latin-1").split(",") if t.strip()
            )
    return tokens


def strip_hop_by_hop(raw: Iterable[tuple[bytes, bytes]]) -> list[tuple[bytes, bytes]]:
    """Drop hop-by-hop headers, including any named by ``Connection``."""
    pairs = list(raw)
    drop = HOP_BY_HOP | _connection_tokens(pairs)
    return [(name, value) for name, value in pairs if name.decode("latin-1").lower() not in drop]


def forwarded_headers(
    headers: Headers,
    *,
    host: str,
    client_addr: str | None,
    scheme: str = "http",
) -> list[tuple[str, str]]:
    """Build the header list sent upstream for a proxied request.

    Usage::

        forwarded_headers(request.headers, host="example.com", client_addr="203.0.113.9")
        # [..client headers.., ("host", "example.com"), ("x-real-ip", "203.0.113.9"),
        #  ("x-forwarded-for", "203.0.113.9"), ("x-forwarded-proto", "http")]
    """
    result: list[tuple[str, str]] = []
    for name, value in strip_hop_by_hop(headers.raw):
        key = name.decode("latin-1").lower()
        if key in _OWNED:
            continue
        result.append((key, value.decode("latin-1")))

    result.append(("host", host))

    chain = [hop.strip() for v in headers.get_list("x-forwarded-for") for hop in v.split(",")]
    chain = [hop for hop in chain if hop]
    if client_addr:
        result.append(("x-real-ip", client_addr))
        chain.append(client_addr)
    if chain:
        result.append(("x-forwarded-for", ", ".join(chain)))

    result.append(("x-forwarded-proto", scheme))
    return result
