#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from .assembler import DeploymentPlan, assemble, write_config
from .caddy import (
    CADDY_FALLBACK_PORT_DEFAULT,
    CADDY_HTTP_PORT_DEFAULT,
    CADDY_HTTPS_PORT_DEFAULT,
    render_caddyfile,
)
from .cloudflare import CloudflareClient
from .env import Settings, load_settings_from_env
from .errors import PersistError, SbxError
from .generators import generate_password, generate_reality_keypair, generate_short_id, generate_uuid
from .log import Logger
from .models import CertMode, LogLevel, ValidationReport
from .pipeline import ValidationPipeline, engine_available


def parse_args(st: Settings, argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="sbx-config", description="Compile and validate sing-box server configuration")
    p.add_argument("--quiet", action="store_true", help="Reduce console output")
    p.add_argument("--debug", action="store_true", help="Debug output")
    p.add_argument("--engine", default=st.sb_bin, help="sing-box binary used for `check` and key generation")
    sub = p.add_subparsers(dest="command", required=True)

    g = sub.add_parser("generate", help="Build, validate and write the configuration")
    g.add_argument("--out", default=st.sb_conf, help="Config path (written atomically; backups kept)")
    g.add_argument("--dry-run", action="store_true", help="Print the validated JSON instead of writing it")
    g.add_argument("--no-engine-check", action="store_true", help="Skip `sing-box check`")

    # Reality
    g.add_argument("--uuid", default=st.uuid, help="VLESS UUID (generated if blank)")
    g.add_argument("--private-key", default=st.private_key, help="Reality private key (generated via engine if blank)")
    g.add_argument("--short-id", default=st.short_id, help="Reality short ID, 1-8 hex chars (generated if blank)")
    g.add_argument("--sni", default=st.sni, help="Reality handshake server / SNI")
    g.add_argument("--reality-port", default=st.reality_port, help="Reality listen port")

    # Certificate-backed inbounds
    g.add_argument("--domain", default=st.domain, help="Domain for WS-TLS / Hysteria2")
    g.add_argument("--cert-mode", default=st.cert_mode, help="manual (default), acme, or cf_dns")
    g.add_argument("--cf-token", default=st.cf_token, help="Cloudflare API token for cf_dns")
    g.add_argument("--verify-token", action="store_true", help="Ask Cloudflare whether the token is active first")
    g.add_argument("--cert-fullchain", default=st.cert_fullchain, help="Certificate path (manual mode)")
    g.add_argument("--cert-key", default=st.cert_key, help="Private key path (manual mode)")
    g.add_argument("--ws-port", default=st.ws_port, help="WS-TLS listen port")
    g.add_argument("--hy2-port", default=st.hy2_port, help="Hysteria2 listen port")
    g.add_argument("--hy2-password", default=st.hy2_password, help="Hysteria2 password (generated if blank)")

    g.add_argument("--no-reality", dest="enable_reality", action="store_false", default=st.enable_reality)
    g.add_argument("--no-ws", dest="enable_ws", action="store_false", default=st.enable_ws)
    g.add_argument("--no-hy2", dest="enable_hy2", action="store_false", default=st.enable_hy2)
    g.add_argument("--dual-stack", action="store_true", default=st.dual_stack, help="Host has IPv6: keep default DNS strategy")
    g.add_argument("--log-level", default=st.log_level, choices=[x.value for x in LogLevel])

    v = sub.add_parser("validate", help="Run the validation pipeline on an existing config file")
    v.add_argument("config", help="Path to config.json")
    v.add_argument("--no-engine-check", action="store_true", help="Skip `sing-box check`")

    c = sub.add_parser("caddyfile", help="Render the Caddyfile for ACME certificate management")
    c.add_argument("--domain", default=st.domain, help="Domain Caddy manages certificates for")
    c.add_argument("--http-port", type=int, default=CADDY_HTTP_PORT_DEFAULT)
    c.add_argument("--https-port", type=int, default=CADDY_HTTPS_PORT_DEFAULT)
    c.add_argument("--fallback-port", type=int, default=CADDY_FALLBACK_PORT_DEFAULT)
    c.add_argument("--out", default="", help="Write here instead of stdout")

    return p.parse_args(argv)


def print_report(report: ValidationReport) -> None:
    for issue in report.issues:
        print(f"  - {issue}", file=sys.stderr)


def _plan_from_args(args: argparse.Namespace, log: Logger) -> DeploymentPlan:
    uuid = args.uuid.strip()
    if not uuid:
        uuid = generate_uuid()
        log.info(f"UUID was missing → generated {uuid}")

    short_id = args.short_id.strip()
    private_key = args.private_key.strip()
    if args.enable_reality:
        if not short_id:
            short_id = generate_short_id()
            log.info(f"Reality short ID was missing → generated {short_id}")
        if not private_key:
            private_key, public_key = generate_reality_keypair(args.engine)
            log.info(f"Reality keypair generated. PublicKey (for clients): {public_key}")

    plan = DeploymentPlan(
        uuid=uuid,
        private_key=private_key,
        short_id=short_id,
        sni=args.sni,
        reality_port=args.reality_port,
        domain=args.domain,
        cert_mode=args.cert_mode,
        certificate_path=args.cert_fullchain,
        key_path=args.cert_key,
        dns_token=args.cf_token,
        ws_port=args.ws_port,
        hy2_port=args.hy2_port,
        hy2_password=args.hy2_password.strip(),
        enable_reality=args.enable_reality,
        enable_ws=args.enable_ws,
        enable_hy2=args.enable_hy2,
        dual_stack=args.dual_stack,
        log_level=args.log_level,
    )

    if plan.enable_hy2 and plan.has_cert_source and not plan.hy2_password:
        pw = generate_password()
        log.info("Hysteria2 password was missing → generated")
        plan = replace(plan, hy2_password=pw)
    return plan


def cmd_generate(args: argparse.Namespace, log: Logger) -> int:
    plan = _plan_from_args(args, log)

    if args.verify_token and plan.mode is CertMode.CF_DNS:
        if not CloudflareClient(log=log).verify_token(plan.dns_token):
            raise SbxError("Cloudflare API token is not usable for DNS-01")

    doc = assemble(plan, log=log)
    engine = None if args.no_engine_check else args.engine
    pipeline = ValidationPipeline(engine_bin=engine, log=log)

    if args.dry_run:
        report = pipeline.run(doc)
        if not report.accepted:
            print_report(report)
            return 1
        sys.stdout.write(doc.to_json())
        return 0

    try:
        write_config(doc, args.out, pipeline=pipeline, log=log)
    except PersistError as e:
        if e.report is not None:
            print_report(e.report)
        raise
    return 0


def cmd_validate(args: argparse.Namespace, log: Logger) -> int:
    engine = None if args.no_engine_check else args.engine
    if engine and not engine_available(engine):
        log.info(f"sing-box binary not found at {engine}, skipping binary check")
    report = ValidationPipeline(engine_bin=engine, log=log).run(Path(args.config))
    print_report(report)
    return 0 if report.accepted else 1


def cmd_caddyfile(args: argparse.Namespace, log: Logger) -> int:
    text = render_caddyfile(args.domain, args.http_port, args.https_port, args.fallback_port)
    if not args.out:
        sys.stdout.write(text)
        return 0
    outp = Path(args.out)
    outp.parent.mkdir(parents=True, exist_ok=True)
    tmp = outp.with_suffix(outp.suffix + ".tmp")
    tmp.write_text(text, encoding="utf-8")
    tmp.replace(outp)
    log.ok(f"Caddyfile written: {outp}")
    return 0


COMMANDS = {
    "generate": cmd_generate,
    "validate": cmd_validate,
    "caddyfile": cmd_caddyfile,
}


def main(argv: Optional[List[str]] = None) -> int:
    try:
        st = load_settings_from_env()
        args = parse_args(st, argv)
        # JSON on stdout must stay clean in dry-run mode
        quiet = args.quiet or getattr(args, "dry_run", False)
        log = Logger(quiet=quiet, debug=args.debug)
        return COMMANDS[args.command](args, log)
    except SbxError as e:
        raise SystemExit(f"\n❌ {e}\n")


if __name__ == "__main__":
    sys.exit(main())
