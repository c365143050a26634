from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from .base import build_base_document, build_route
from .compat import validate_selection
from .errors import InvalidValue, MissingField, PersistError
from .inbounds import (
    DEFAULT_LISTEN,
    compile_hysteria2_inbound,
    compile_reality_inbound,
    compile_ws_inbound,
)
from .log import Logger
from .models import (
    VISION_FLOW,
    CertMode,
    ConfigurationDocument,
    Inbound,
    ProtocolSelection,
    Security,
    Transport,
    ValidationReport,
)
from .pipeline import ValidationPipeline
from .tls import build_tls_block

REALITY_PORT_DEFAULT = 443
WS_PORT_DEFAULT = 8444
HY2_PORT_DEFAULT = 8443
SNI_DEFAULT = "www.microsoft.com"

WS_ALPN = ["h2", "http/1.1"]
HY2_ALPN = ["h3"]


@dataclass(frozen=True)
class DeploymentPlan:
    """Every input of one deployment, passed explicitly."""

    uuid: str = ""
    private_key: str = ""
    short_id: str = ""
    sni: str = SNI_DEFAULT
    reality_port: Union[int, str] = REALITY_PORT_DEFAULT

    domain: str = ""
    cert_mode: Union[str, CertMode, None] = None
    certificate_path: str = ""
    key_path: str = ""
    dns_token: str = ""
    ws_port: Union[int, str] = WS_PORT_DEFAULT
    hy2_port: Union[int, str] = HY2_PORT_DEFAULT
    hy2_password: str = ""

    enable_reality: bool = True
    enable_ws: bool = True
    enable_hy2: bool = True

    listen: str = DEFAULT_LISTEN
    dual_stack: bool = False
    log_level: str = "warn"

    @property
    def mode(self) -> CertMode:
        return CertMode.parse(self.cert_mode)

    @property
    def has_cert_source(self) -> bool:
        if self.mode is not CertMode.MANUAL:
            return True
        return bool(self.certificate_path.strip() and self.key_path.strip())

    def selections(self) -> List[ProtocolSelection]:
        out: List[ProtocolSelection] = []
        if self.enable_reality:
            out.append(ProtocolSelection(Transport.TCP, Security.REALITY, VISION_FLOW))
        if self.has_cert_source:
            if self.enable_ws:
                out.append(ProtocolSelection(Transport.WS, Security.TLS, None, self.mode))
            if self.enable_hy2:
                out.append(ProtocolSelection(Transport.QUIC, Security.TLS, None, self.mode))
        return out


def _check_unique_tags(inbounds: List[Inbound]) -> None:
    seen = set()
    for ib in inbounds:
        if ib.tag in seen:
            raise InvalidValue("inbounds.tag", f"duplicate inbound tag '{ib.tag}'")
        seen.add(ib.tag)


def assemble(plan: DeploymentPlan, log: Optional[Logger] = None) -> ConfigurationDocument:
    selections = plan.selections()
    if not selections:
        raise MissingField("inbounds", "no protocol enabled (enable Reality, or WS/Hysteria2 with a certificate source)")
    for sel in selections:
        validate_selection(sel)

    if plan.has_cert_source and (plan.enable_ws or plan.enable_hy2) and not plan.domain.strip():
        raise MissingField("domain", "a domain is required for certificate-backed inbounds")

    base = build_base_document(plan.dual_stack, plan.log_level, log=log)
    inbounds: List[Inbound] = []

    if plan.enable_reality:
        inbounds.append(compile_reality_inbound(
            plan.uuid, plan.reality_port, plan.listen, plan.sni,
            plan.private_key, plan.short_id, log=log,
        ))

    if plan.has_cert_source:
        domain = plan.domain.strip()
        if plan.enable_ws:
            tls = build_tls_block(domain, WS_ALPN, plan.mode, plan.certificate_path, plan.key_path, plan.dns_token, log=log)
            inbounds.append(compile_ws_inbound(plan.uuid, plan.ws_port, plan.listen, tls, log=log))
        if plan.enable_hy2:
            tls = build_tls_block(domain, HY2_ALPN, plan.mode, plan.certificate_path, plan.key_path, plan.dns_token, log=log)
            inbounds.append(compile_hysteria2_inbound(plan.hy2_password, plan.hy2_port, plan.listen, tls, log=log))
    elif log and (plan.enable_ws or plan.enable_hy2):
        log.info("  - No certificate source: skipping WS-TLS and Hysteria2 (Reality-only)")

    _check_unique_tags(inbounds)
    tags = [ib.tag for ib in inbounds]
    return replace(base, inbounds=inbounds, route=build_route(tags))


def _backup_existing(path: Path) -> Optional[Path]:
    if not path.exists():
        return None
    backup_dir = path.parent / "backups"
    backup_dir.mkdir(exist_ok=True)
    ts = datetime.now().strftime("%Y%m%d-%H%M%S")
    backup_path = backup_dir / f"{path.name}.{ts}.bak"
    shutil.copy2(path, backup_path)
    return backup_path


def write_config(
    document: ConfigurationDocument,
    out_path: Union[str, Path],
    pipeline: Optional[ValidationPipeline] = None,
    log: Optional[Logger] = None,
    backup: bool = True,
) -> ValidationReport:
    """Write to <out>.tmp, validate that file, then rename into place.

    A rejected document never replaces the live config; the temp file is
    removed and PersistError carries the report.
    """
    log = log or Logger(quiet=True)
    pipeline = pipeline or ValidationPipeline(log=log)
    outp = Path(out_path)
    outp.parent.mkdir(parents=True, exist_ok=True)

    tmp = outp.with_suffix(outp.suffix + ".tmp")
    try:
        # 0600 before any secret is written
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        os.fchmod(fd, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(document.to_json())

        report = pipeline.run(tmp)
        if not report.accepted:
            raise PersistError(
                f"Generated configuration is invalid ({len(report.errors)} error(s)); {outp} left untouched",
                report,
            )

        if backup:
            saved = _backup_existing(outp)
            if saved:
                log.dbg(f"previous config saved to {saved}")
        os.replace(tmp, outp)
    finally:
        if tmp.exists():
            tmp.unlink()

    log.ok(f"Configuration written and validated: {outp}")
    return report
