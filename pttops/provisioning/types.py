"""Shared data types for stacks and pipeline runs."""

from dataclasses import dataclass, field
from datetime import datetime

# Stack output key -> StackEndpoints attribute
OUTPUT_KEYS = {
    "Address": "address",
    "Api": "api",
    "Login": "login",
    "Media": "media",
    "Datastore": "datastore",
    "EventStream": "event_stream",
    "CDN": "cdn",
    "CA": "ca",
}


@dataclass
class StackEndpoints:
    """Named endpoints extracted from a stack's outputs."""

    address: str = ""
    api: str = ""
    login: str = ""
    media: str = ""
    datastore: str = ""
    event_stream: str = ""
    cdn: str = ""
    ca: str = ""

    @classmethod
    def from_outputs(cls, outputs):
        return cls(**{attr: outputs.get(key, "") for key, attr in OUTPUT_KEYS.items()})

    @property
    def login_url(self) -> str:
        return f"https://{self.login}"

    def https_probes(self) -> list[tuple[str, str]]:
        """(label, url) pairs polled after the application install, in order."""
        return [
            ("CA", f"https://{self.ca}/v1/pki/ca/pem"),
            ("api", f"https://{self.api}"),
            ("login", f"https://{self.login}"),
            ("media", f"https://{self.media}"),
            ("datastore", f"https://{self.datastore}"),
            ("eventstream", f"https://{self.event_stream}"),
            ("cdn", f"https://{self.cdn}"),
        ]


@dataclass
class StackSummary:
    """One stack as returned by a listing."""

    name: str
    status: str = ""
    description: str = ""
    created: datetime | None = None


@dataclass
class CreateRun:
    """In-memory record of a single provisioning run."""

    stack_name: str
    endpoints: StackEndpoints = field(default_factory=StackEndpoints)
    outputs: dict[str, str] = field(default_factory=dict)
    phases: dict[str, float] = field(default_factory=dict)
    rolled_back: bool = False
    total: float = 0.0
