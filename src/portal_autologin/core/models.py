"""Value types shared by the watcher, the probe and the login engine."""

from enum import Enum
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class InterfaceHardware(str, Enum):
    """Hardware class of the interface carrying the primary route."""

    WIRELESS = "wireless"
    WIRED = "wired"
    OTHER = "other"


class MatchPolicy(str, Enum):
    """Which identity attribute is compared against the allow-list."""

    SSID = "ssid"
    BSSID = "bssid"
    EITHER = "either"


class ConflictPolicy(str, Enum):
    """How the competing native captive-portal handler is dealt with."""

    SUPPRESS = "suppress"
    WARN = "warn"


class NetworkIdentity(BaseModel):
    """Snapshot of the currently associated wireless network."""

    model_config = ConfigDict(frozen=True)

    interface: str
    hardware: InterfaceHardware = InterfaceHardware.WIRELESS
    ssid: str | None = None
    bssid: str | None = None

    @property
    def is_wireless(self) -> bool:
        """True for a wireless interface that is actually associated."""
        return self.hardware == InterfaceHardware.WIRELESS and bool(self.ssid or self.bssid)

    def __str__(self) -> str:
        return f"{self.ssid or '?'} ({self.bssid or 'no bssid'}) on {self.interface}"


class AllowList:
    """Ordered, read-only set of network identities eligible for auto-login.

    Entries compare exactly. BSSIDs arrive lower-cased from the watcher, so
    BSSID entries must be written in lower case.
    """

    def __init__(self, entries: list[str] | tuple[str, ...] | None = None):
        self._entries: tuple[str, ...] = tuple(entries or ())

    @property
    def entries(self) -> tuple[str, ...]:
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __repr__(self) -> str:
        return f"AllowList({list(self._entries)!r})"

    def matches(self, identity: NetworkIdentity, policy: MatchPolicy) -> bool:
        ssid_match = identity.ssid is not None and identity.ssid in self._entries
        bssid_match = identity.bssid is not None and identity.bssid in self._entries

        if policy == MatchPolicy.SSID:
            return ssid_match
        if policy == MatchPolicy.BSSID:
            return bssid_match
        return ssid_match or bssid_match


class ProbeOutcome(str, Enum):
    """Classification of one connectivity check."""

    AUTHENTICATED = "authenticated"
    CAPTIVE_PORTAL = "captive_portal"
    UNRECOGNIZED_PORTAL = "unrecognized_portal"
    UNREACHABLE = "unreachable"


class ProbeResult(BaseModel):
    """Outcome of a connectivity probe. Created fresh per call, never mutated."""

    model_config = ConfigDict(frozen=True)

    outcome: ProbeOutcome
    url: str | None = None
    cause: str | None = None
    body: str | None = None

    @classmethod
    def authenticated(cls) -> "ProbeResult":
        return cls(outcome=ProbeOutcome.AUTHENTICATED)

    @classmethod
    def captive_portal(cls, url: str, body: str | None = None) -> "ProbeResult":
        return cls(outcome=ProbeOutcome.CAPTIVE_PORTAL, url=url, body=body)

    @classmethod
    def unrecognized_portal(cls, url: str | None, body: str | None = None) -> "ProbeResult":
        return cls(outcome=ProbeOutcome.UNRECOGNIZED_PORTAL, url=url, body=body)

    @classmethod
    def unreachable(cls, cause: str) -> "ProbeResult":
        return cls(outcome=ProbeOutcome.UNREACHABLE, cause=cause)

    def describe(self) -> str:
        if self.outcome == ProbeOutcome.UNREACHABLE:
            return f"unreachable: {self.cause}"
        if self.url:
            return f"{self.outcome.value}: {self.url}"
        return self.outcome.value


class Credentials(BaseModel):
    """Portal account. The password never shows up in reprs or logs."""

    model_config = ConfigDict(frozen=True)

    username: str = ""
    password: SecretStr = Field(default_factory=lambda: SecretStr(""))

    @classmethod
    def from_pair(cls, pair: tuple[str, str]) -> "Credentials":
        username, password = pair
        return cls(username=username, password=SecretStr(password))

    def form_body(self) -> str:
        """URL-encoded body understood by the portal login form."""
        return urlencode({"user": self.username, "password": self.password.get_secret_value()})


class LoginAttempt(BaseModel):
    """Transient record of one login cycle."""

    generation: int
    portal_url: str | None = None
    attempts_left: int = Field(ge=0)
    credentials: Credentials | None = None  # Last submitted account
