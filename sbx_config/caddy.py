from __future__ import annotations

from typing import Iterable

from .errors import IncompatibleCombination, MissingField
from .inbounds import require_port

CADDY_HTTP_PORT_DEFAULT = 80
CADDY_HTTPS_PORT_DEFAULT = 8445
CADDY_FALLBACK_PORT_DEFAULT = 8080

# sing-box listeners: Reality, Hysteria2, WS-TLS
ENGINE_PORTS = (443, 8443, 8444)


def render_caddyfile(
    domain: str,
    http_port: int = CADDY_HTTP_PORT_DEFAULT,
    https_port: int = CADDY_HTTPS_PORT_DEFAULT,
    fallback_port: int = CADDY_FALLBACK_PORT_DEFAULT,
    engine_ports: Iterable[int] = ENGINE_PORTS,
) -> str:
    """Caddyfile for the certificate-managing reverse proxy.

    Caddy only answers on its own HTTPS port; production traffic stays on
    the engine's listeners, so the HTTPS port must not overlap them.
    """
    d = (domain or "").strip()
    if not d:
        raise MissingField("domain", "Caddy needs a domain to manage certificates for")

    hp = require_port(http_port, "http_port")
    sp = require_port(https_port, "https_port")
    fp = require_port(fallback_port, "fallback_port")

    taken = set(int(p) for p in engine_ports)
    if sp in taken:
        raise IncompatibleCombination(
            "https_port",
            f"Caddy HTTPS port ({sp}) conflicts with sing-box ports {sorted(taken)} (default: {CADDY_HTTPS_PORT_DEFAULT})",
        )
    if len({hp, sp, fp}) != 3:
        raise IncompatibleCombination("caddy ports", f"http/https/fallback ports must differ: {hp}/{sp}/{fp}")

    return f"""{{
  admin off
  http_port {hp}
  https_port {sp}
  email admin@{d}
}}

# Caddy on port {sp} for automatic certificate management
# sing-box handles production traffic on standard ports
{d}:{sp} {{
  respond "Caddy Certificate Management (Port {sp})" 200
}}

# HTTP fallback
:{fp} {{
  respond "404 - Not Found" 404
}}
"""
