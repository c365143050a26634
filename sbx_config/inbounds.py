from __future__ import annotations

import re
from typing import Optional, Union

from .compat import validate_pairing
from .errors import InvalidValue, MissingField
from .log import Logger
from .models import (
    VISION_FLOW,
    Hysteria2User,
    Inbound,
    RealityBlock,
    Security,
    TLSBlock,
    Transport,
    TransportConfig,
    VlessUser,
    disabled_multiplex,
)

TAG_REALITY = "in-reality"
TAG_WS = "in-ws"
TAG_HY2 = "in-hy2"

DEFAULT_LISTEN = "::"
REALITY_ALPN = ["h2", "http/1.1"]
REALITY_HANDSHAKE_PORT = 443
REALITY_MAX_TIME_DIFF = "1m"
WS_PATH = "/ws"
HY2_UP_MBPS = 100
HY2_DOWN_MBPS = 100

_SHORT_ID_RE = re.compile(r"^[0-9a-fA-F]{1,8}$")


def require_port(port: Union[int, str, None], name: str = "listen_port") -> int:
    if port is None or str(port).strip() == "":
        raise MissingField(name, "port is required")
    s = str(port).strip()
    if not s.isdigit():
        raise InvalidValue(name, f"port must be numeric: {port}")
    p = int(s)
    if p < 1 or p > 65535:
        raise InvalidValue(name, f"port must be between 1-65535: {p}")
    return p


def require_text(value: Optional[str], name: str, hint: str = "") -> str:
    v = (value or "").strip()
    if not v:
        raise MissingField(name, f"{name} cannot be empty" + (f" ({hint})" if hint else ""))
    return v


def validate_short_id(short_id: str) -> str:
    sid = require_text(short_id, "short_id", "generate: openssl rand -hex 4")
    if not _SHORT_ID_RE.match(sid):
        raise InvalidValue("short_id", f"short ID must be 1-8 hexadecimal characters, got: {sid}")
    return sid


def _require_cert_tls(tls: Optional[TLSBlock], transport: Transport) -> TLSBlock:
    if tls is None:
        raise MissingField("tls", "a TLS block is required (build it with build_tls_block)")
    if tls.reality is not None:
        validate_pairing(transport, Security.REALITY)
    return tls


def compile_reality_inbound(
    uuid: str,
    port: Union[int, str],
    listen: str,
    server_name: str,
    private_key: str,
    short_id: str,
    handshake_port: int = REALITY_HANDSHAKE_PORT,
    max_time_difference: str = REALITY_MAX_TIME_DIFF,
    log: Optional[Logger] = None,
) -> Inbound:
    """VLESS over raw TCP with Reality. Carries its own TLS-like layer, so no
    certificate source is involved."""
    uid = require_text(uuid, "uuid", "generate: sing-box generate uuid")
    priv = require_text(private_key, "private_key", "generate: sing-box generate reality-keypair")
    sid = validate_short_id(short_id)
    sni = require_text(server_name, "server_name")
    p = require_port(port)
    hp = require_port(handshake_port, "handshake_port")

    validate_pairing(Transport.TCP, Security.REALITY, VISION_FLOW)

    if log:
        log.info("  - Creating Reality inbound configuration...")

    tls = TLSBlock(
        server_name=sni,
        alpn=list(REALITY_ALPN),
        reality=RealityBlock(
            private_key=priv,
            short_id=[sid],
            handshake_server=sni,
            handshake_port=hp,
            max_time_difference=max_time_difference,
        ),
    )
    return Inbound(
        type="vless",
        tag=TAG_REALITY,
        listen=listen or DEFAULT_LISTEN,
        listen_port=p,
        users=[VlessUser(uuid=uid, flow=VISION_FLOW)],
        multiplex=disabled_multiplex(),
        tls=tls,
    )


def compile_ws_inbound(
    uuid: str,
    port: Union[int, str],
    listen: str,
    tls: Optional[TLSBlock],
    log: Optional[Logger] = None,
) -> Inbound:
    uid = require_text(uuid, "uuid")
    p = require_port(port)
    t = _require_cert_tls(tls, Transport.WS)
    validate_pairing(Transport.WS, Security.TLS)

    if log:
        log.info("  - Creating WS-TLS inbound configuration...")

    return Inbound(
        type="vless",
        tag=TAG_WS,
        listen=listen or DEFAULT_LISTEN,
        listen_port=p,
        users=[VlessUser(uuid=uid)],
        multiplex=disabled_multiplex(),
        tls=t,
        transport=TransportConfig(type="ws", path=WS_PATH),
    )


def compile_hysteria2_inbound(
    password: str,
    port: Union[int, str],
    listen: str,
    tls: Optional[TLSBlock],
    up_mbps: int = HY2_UP_MBPS,
    down_mbps: int = HY2_DOWN_MBPS,
    log: Optional[Logger] = None,
) -> Inbound:
    pw = require_text(password, "password")
    p = require_port(port)
    t = _require_cert_tls(tls, Transport.QUIC)
    validate_pairing(Transport.QUIC, Security.TLS)
    for name, v in (("up_mbps", up_mbps), ("down_mbps", down_mbps)):
        if not isinstance(v, int) or v <= 0:
            raise InvalidValue(name, f"bandwidth must be a positive integer, got {v!r}")

    if log:
        log.info("  - Creating Hysteria2 inbound configuration...")

    return Inbound(
        type="hysteria2",
        tag=TAG_HY2,
        listen=listen or DEFAULT_LISTEN,
        listen_port=p,
        users=[Hysteria2User(password=pw)],
        up_mbps=up_mbps,
        down_mbps=down_mbps,
        tls=t,
    )
