from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Union

from .errors import InvalidValue
from .log import Logger
from .models import ConfigurationDocument, LogLevel, Outbound, Route, RouteRule

DNS_LOCAL_TAG = "dns-local"
IPV4_ONLY_STRATEGY = "ipv4_only"

# Connection tuning applied to the default (first) egress outbound.
DIRECT_OUTBOUND_OPTIONS: Dict[str, Any] = {
    "bind_interface": "",
    "routing_mark": 0,
    "reuse_addr": False,
    "connect_timeout": "5s",
    "tcp_fast_open": True,
    "udp_fragment": True,
}


def parse_log_level(level: Union[str, LogLevel]) -> LogLevel:
    if isinstance(level, LogLevel):
        return level
    v = str(level or "").strip().lower()
    try:
        return LogLevel(v)
    except ValueError:
        allowed = ", ".join(x.value for x in LogLevel)
        raise InvalidValue("log.level", f"log level must be one of {allowed}, got {level!r}") from None


def build_base_document(
    dual_stack: bool,
    log_level: Union[str, LogLevel] = LogLevel.WARN,
    log: Optional[Logger] = None,
) -> ConfigurationDocument:
    lvl = parse_log_level(log_level)

    dns: Dict[str, Any] = {"servers": [{"type": "local", "tag": DNS_LOCAL_TAG}]}
    if not dual_stack:
        if log:
            log.info("  - Applying IPv4-only DNS configuration for network compatibility")
        dns["strategy"] = IPV4_ONLY_STRATEGY
    elif log:
        log.info("  - Using default DNS configuration for dual-stack network")

    return ConfigurationDocument(
        log={"level": lvl.value, "timestamp": True},
        dns=dns,
        inbounds=[],
        outbounds=[
            Outbound(type="direct", tag="direct", options=dict(DIRECT_OUTBOUND_OPTIONS)),
            Outbound(type="block", tag="block"),
        ],
        route=None,
    )


def build_route(inbound_tags: Sequence[str]) -> Route:
    """Sniffing and DNS hijack as route actions (sing-box 1.12+ style)."""
    rules: List[RouteRule] = []
    if inbound_tags:
        rules.append(RouteRule(action="sniff", inbound=list(inbound_tags)))
    rules.append(RouteRule(action="hijack-dns", protocol="dns"))
    return Route(rules=rules, auto_detect_interface=True, default_dns_server=DNS_LOCAL_TAG)
