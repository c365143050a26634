from __future__ import annotations

import re
from typing import List, Optional, Sequence, Union

from .errors import InvalidValue, MissingField
from .log import Logger
from .models import AcmeBlock, CertMode, Dns01Challenge, TLSBlock

ACME_DATA_DIRECTORY = "/var/lib/sing-box/acme"
ACME_PROVIDER = "letsencrypt"
DNS01_PROVIDER = "cloudflare"

_CF_TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]{40}$")


def validate_cf_api_token(token: str) -> str:
    """Cloudflare API tokens are 40 chars of [A-Za-z0-9_-]."""
    t = (token or "").strip()
    if not t:
        raise MissingField("dns_token", "Cloudflare API token is required for DNS-01")
    if not _CF_TOKEN_RE.match(t):
        raise InvalidValue("dns_token", f"Cloudflare API token must be 40 characters of [A-Za-z0-9_-], got {len(t)} chars")
    return t


def _acme_block(server_name: str, dns_token: Optional[str]) -> AcmeBlock:
    if dns_token is None:
        return AcmeBlock(
            domain=[server_name],
            data_directory=ACME_DATA_DIRECTORY,
            provider=ACME_PROVIDER,
            disable_tls_alpn_challenge=True,
        )
    return AcmeBlock(
        domain=[server_name],
        data_directory=ACME_DATA_DIRECTORY,
        provider=ACME_PROVIDER,
        disable_http_challenge=True,
        disable_tls_alpn_challenge=True,
        dns01_challenge=Dns01Challenge(provider=DNS01_PROVIDER, api_token=dns_token),
    )


def build_tls_block(
    server_name: str,
    alpn: Sequence[str],
    cert_mode: Union[str, CertMode, None],
    certificate_path: str = "",
    key_path: str = "",
    dns_token: str = "",
    log: Optional[Logger] = None,
) -> TLSBlock:
    """Build the TLS sub-document for one certificate mode.

    manual  -> certificate_path + key_path, no acme
    acme    -> acme block, HTTP-01 left enabled (alias: caddy)
    cf_dns  -> acme block with dns01_challenge, HTTP-01 and TLS-ALPN disabled
    """
    mode = CertMode.parse(cert_mode)
    name = (server_name or "").strip()
    alpn_list: List[str] = [a for a in alpn if a]

    if mode is CertMode.MANUAL:
        cert = (certificate_path or "").strip()
        key = (key_path or "").strip()
        if not cert:
            raise MissingField("certificate_path", "manual certificate mode needs a certificate path")
        if not key:
            raise MissingField("key_path", "manual certificate mode needs a key path")
        if log:
            log.dbg(f"TLS block: manual certificate {cert}")
        return TLSBlock(server_name=name, alpn=alpn_list, certificate_path=cert, key_path=key)

    if not name:
        raise MissingField("server_name", "ACME certificate modes need a domain name")

    if mode is CertMode.ACME:
        if log:
            log.dbg(f"TLS block: ACME HTTP-01 for {name}")
        return TLSBlock(server_name=name, alpn=alpn_list, acme=_acme_block(name, None))

    if mode is CertMode.CF_DNS:
        token = (dns_token or "").strip()
        if not token:
            raise MissingField("dns_token", "DNS-01 mode needs a DNS provider API token")
        if log:
            log.dbg(f"TLS block: ACME DNS-01 ({DNS01_PROVIDER}) for {name}")
        return TLSBlock(server_name=name, alpn=alpn_list, acme=_acme_block(name, token))

    raise AssertionError(f"unhandled certificate mode {mode!r}")
