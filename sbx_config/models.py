from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .errors import UnsupportedMode

VISION_FLOW = "xtls-rprx-vision"


class Transport(str, Enum):
    TCP = "tcp"
    WS = "ws"
    GRPC = "grpc"
    HTTP = "http"
    QUIC = "quic"

    @classmethod
    def parse(cls, value: Union[str, "Transport"]) -> "Transport":
        if isinstance(value, cls):
            return value
        v = str(value or "").strip().lower()
        if v == "websocket":
            v = "ws"
        try:
            return cls(v)
        except ValueError:
            raise UnsupportedMode("transport", f"unknown transport {value!r}") from None


class Security(str, Enum):
    NONE = "none"
    TLS = "tls"
    REALITY = "reality"

    @classmethod
    def parse(cls, value: Union[str, "Security"]) -> "Security":
        if isinstance(value, cls):
            return value
        v = str(value or "").strip().lower() or "none"
        try:
            return cls(v)
        except ValueError:
            raise UnsupportedMode("security", f"unknown security layer {value!r}") from None


# Older installers spelled the HTTP-01 mode differently; both map to ACME.
CERT_MODE_ALIASES = {
    "caddy": "acme",
    "le_http": "acme",
}


class CertMode(str, Enum):
    MANUAL = "manual"
    ACME = "acme"        # ACME HTTP-01
    CF_DNS = "cf_dns"    # ACME DNS-01 through Cloudflare

    @classmethod
    def parse(cls, value: Union[str, "CertMode", None]) -> "CertMode":
        if isinstance(value, cls):
            return value
        v = str(value or "").strip().lower()
        if not v:
            return cls.MANUAL
        v = CERT_MODE_ALIASES.get(v, v)
        try:
            return cls(v)
        except ValueError:
            raise UnsupportedMode("cert_mode", f"unknown certificate mode {value!r} (use manual, acme or cf_dns)") from None


class LogLevel(str, Enum):
    TRACE = "trace"
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"


@dataclass(frozen=True)
class ProtocolSelection:
    transport: Transport
    security: Security
    flow: Optional[str] = None
    cert_mode: CertMode = CertMode.MANUAL


# ---------------------------------------------------------------------------
# TLS sub-document
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Dns01Challenge:
    api_token: str
    provider: str = "cloudflare"

    def to_dict(self) -> Dict[str, Any]:
        return {"provider": self.provider, "api_token": self.api_token}


@dataclass(frozen=True)
class AcmeBlock:
    domain: List[str]
    data_directory: str
    provider: str
    disable_tls_alpn_challenge: bool = True
    # None means "key absent": HTTP-01 must stay enabled
    disable_http_challenge: Optional[bool] = None
    dns01_challenge: Optional[Dns01Challenge] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "domain": list(self.domain),
            "data_directory": self.data_directory,
            "provider": self.provider,
        }
        if self.disable_http_challenge is not None:
            d["disable_http_challenge"] = self.disable_http_challenge
        d["disable_tls_alpn_challenge"] = self.disable_tls_alpn_challenge
        if self.dns01_challenge is not None:
            d["dns01_challenge"] = self.dns01_challenge.to_dict()
        return d


@dataclass(frozen=True)
class RealityBlock:
    private_key: str
    short_id: List[str]
    handshake_server: str
    handshake_port: int = 443
    max_time_difference: str = "1m"
    enabled: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "private_key": self.private_key,
            "short_id": list(self.short_id),
            "handshake": {"server": self.handshake_server, "server_port": self.handshake_port},
            "max_time_difference": self.max_time_difference,
        }


@dataclass(frozen=True)
class TLSBlock:
    server_name: str
    alpn: List[str] = field(default_factory=list)
    enabled: bool = True
    certificate_path: Optional[str] = None
    key_path: Optional[str] = None
    acme: Optional[AcmeBlock] = None
    reality: Optional[RealityBlock] = None

    @property
    def is_manual(self) -> bool:
        return bool(self.certificate_path or self.key_path)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"enabled": self.enabled}
        if self.server_name:
            d["server_name"] = self.server_name
        if self.certificate_path is not None:
            d["certificate_path"] = self.certificate_path
        if self.key_path is not None:
            d["key_path"] = self.key_path
        if self.acme is not None:
            d["acme"] = self.acme.to_dict()
        if self.reality is not None:
            d["reality"] = self.reality.to_dict()
        if self.alpn:
            d["alpn"] = list(self.alpn)
        return d


# ---------------------------------------------------------------------------
# Inbounds
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class VlessUser:
    uuid: str
    flow: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"uuid": self.uuid}
        if self.flow:
            d["flow"] = self.flow
        return d


@dataclass(frozen=True)
class Hysteria2User:
    password: str

    def to_dict(self) -> Dict[str, Any]:
        return {"password": self.password}


User = Union[VlessUser, Hysteria2User]


@dataclass(frozen=True)
class TransportConfig:
    type: str
    path: Optional[str] = None
    service_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"type": self.type}
        if self.path is not None:
            d["path"] = self.path
        if self.service_name is not None:
            d["service_name"] = self.service_name
        return d


def disabled_multiplex() -> Dict[str, Any]:
    return {
        "enabled": False,
        "padding": False,
        "brutal": {"enabled": False, "up_mbps": 1000, "down_mbps": 1000},
    }


@dataclass(frozen=True)
class Inbound:
    type: str
    tag: str
    listen: str
    listen_port: int
    users: List[User]
    tls: Optional[TLSBlock] = None
    transport: Optional[TransportConfig] = None
    multiplex: Optional[Dict[str, Any]] = None
    up_mbps: Optional[int] = None
    down_mbps: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "type": self.type,
            "tag": self.tag,
            "listen": self.listen,
            "listen_port": self.listen_port,
            "users": [u.to_dict() for u in self.users],
        }
        if self.multiplex is not None:
            d["multiplex"] = self.multiplex
        if self.up_mbps is not None:
            d["up_mbps"] = self.up_mbps
        if self.down_mbps is not None:
            d["down_mbps"] = self.down_mbps
        if self.tls is not None:
            d["tls"] = self.tls.to_dict()
        if self.transport is not None:
            d["transport"] = self.transport.to_dict()
        return d


# ---------------------------------------------------------------------------
# Top-level document
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Outbound:
    type: str
    tag: str
    options: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"type": self.type, "tag": self.tag}
        d.update(self.options)
        return d


@dataclass(frozen=True)
class RouteRule:
    action: str
    inbound: Optional[List[str]] = None
    protocol: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        if self.inbound is not None:
            d["inbound"] = list(self.inbound)
        if self.protocol is not None:
            d["protocol"] = self.protocol
        d["action"] = self.action
        return d


@dataclass(frozen=True)
class Route:
    rules: List[RouteRule] = field(default_factory=list)
    auto_detect_interface: bool = True
    default_dns_server: str = "dns-local"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rules": [r.to_dict() for r in self.rules],
            "auto_detect_interface": self.auto_detect_interface,
            "default_domain_resolver": {"server": self.default_dns_server},
        }


@dataclass(frozen=True)
class ConfigurationDocument:
    log: Dict[str, Any]
    dns: Dict[str, Any]
    inbounds: List[Inbound] = field(default_factory=list)
    outbounds: List[Outbound] = field(default_factory=list)
    route: Optional[Route] = None

    @property
    def inbound_tags(self) -> List[str]:
        return [i.tag for i in self.inbounds]

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "log": dict(self.log),
            "dns": dict(self.dns),
            "inbounds": [i.to_dict() for i in self.inbounds],
            "outbounds": [o.to_dict() for o in self.outbounds],
        }
        if self.route is not None:
            d["route"] = self.route.to_dict()
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=2) + "\n"


# ---------------------------------------------------------------------------
# Validation results
# ---------------------------------------------------------------------------

class Stage(str, Enum):
    SYNTAX = "syntax"
    SCHEMA = "schema"
    PORT_CONFLICT = "port_conflict"
    TLS = "tls"
    ROUTE_RULES = "route_rules"
    ENGINE = "engine"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class IssueKind(str, Enum):
    SYNTAX_ERROR = "SyntaxError"
    SCHEMA_VIOLATION = "SchemaViolation"
    INCOMPATIBLE_COMBINATION = "IncompatibleCombination"
    PORT_CONFLICT = "PortConflict"
    TLS_MISCONFIGURATION = "TLSMisconfiguration"
    DEPRECATED_FIELD = "DeprecatedField"
    ENGINE_REJECTED = "EngineRejected"


@dataclass(frozen=True)
class ValidationIssue:
    stage: Stage
    severity: Severity
    field: str
    message: str
    kind: IssueKind

    def __str__(self) -> str:
        return f"[{self.stage.value}] {self.severity.value} {self.field}: {self.message}"


@dataclass(frozen=True)
class ValidationReport:
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity is Severity.ERROR]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity is Severity.WARNING]

    @property
    def accepted(self) -> bool:
        return not self.errors

    def by_stage(self, stage: Stage) -> List[ValidationIssue]:
        return [i for i in self.issues if i.stage is stage]
