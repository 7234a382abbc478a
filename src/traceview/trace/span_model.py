from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Kind(str, Enum):
    """Span kind, as reported by the instrumentation."""

    NONE = "NONE"
    CLIENT = "CLIENT"
    SERVER = "SERVER"
    PRODUCER = "PRODUCER"
    CONSUMER = "CONSUMER"


@dataclass(frozen=True)
class Endpoint:
    """The network context of a span: which service, where."""

    service_name: Optional[str] = None
    ip: Optional[str] = None
    port: Optional[int] = None


@dataclass(frozen=True)
class Annotation:
    timestamp: int
    value: str


@dataclass(frozen=True)
class Span:
    """One timed operation within a trace, already corrected for clock skew."""

    trace_id: str
    id: str
    parent_id: Optional[str] = None
    kind: Kind = Kind.NONE
    name: Optional[str] = None

    # Timing (epoch microseconds)
    timestamp: Optional[int] = None
    duration: Optional[int] = None

    # Endpoints
    local_endpoint: Optional[Endpoint] = None
    remote_endpoint: Optional[Endpoint] = None

    annotations: tuple[Annotation, ...] = ()
    tags: dict[str, str] = field(default_factory=dict)

    # True when this is the server leg of an id also reported by a client
    shared: bool = False

    @property
    def is_root(self) -> bool:
        return not self.parent_id

    def service_names(self) -> list[str]:
        """Service names of the local and remote endpoints, local first."""
        names: list[str] = []
        for endpoint in (self.local_endpoint, self.remote_endpoint):
            if endpoint and endpoint.service_name and endpoint.service_name not in names:
                names.append(endpoint.service_name)
        return names
