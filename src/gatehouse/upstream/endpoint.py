"""ServiceEndpoint: the address of a reachable process."""

from dataclasses import dataclass

from gatehouse.errors import ConfigurationError


@dataclass(frozen=True, slots=True)
class ServiceEndpoint:
    """A named network endpoint. Immutable for its lifetime.

    Equality covers all three fields, so two replicas on the same host
    need distinct ports or names.
    """

    name: str
    host: str
    port: int

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def url(self) -> str:
        """Base URL for plain-HTTP dispatch (``http://host:port``)."""
        return f"http://{self.address}"

    def __str__(self) -> str:
        if self.name == self.host:
            return self.address
        return f"{self.name}={self.address}"


def parse_endpoint(value: str) -> ServiceEndpoint:
    """Parse ``"[name=]host:port"`` into a ServiceEndpoint.

    Examples::

        "backend:5000"         -> ServiceEndpoint("backend", "backend", 5000)
        "api-1=10.0.0.4:5000"  -> ServiceEndpoint("api-1", "10.0.0.4", 5000)
    """
    raw = value.strip()
    name, sep, address = raw.partition("=")
    if not sep:
        name, address = "", raw

    host, colon, port_text = address.rpartition(":")
    if not colon or not host:
        msg = f"Invalid endpoint {value!r}: expected [name=]host:port"
        raise ConfigurationError(msg)
    try:
        port = int(port_text)
    except ValueError:
        msg = f"Invalid endpoint {value!r}: port {port_text!r} is not a number"
        raise ConfigurationError(msg) from None
    if not 0 < port < 65536:
        msg = f"Invalid endpoint {value!r}: port {port} out of range"
        raise ConfigurationError(msg)

    return ServiceEndpoint(name=name.strip() or host, host=host, port=port)
