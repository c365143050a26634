from __future__ import annotations

import json
import os
import subprocess
import tempfile
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from .compat import check_pairing
from .errors import ConfigError
from .log import Logger
from .models import (
    VISION_FLOW,
    ConfigurationDocument,
    IssueKind,
    Severity,
    Stage,
    ValidationIssue,
    ValidationReport,
)

DEFAULT_ENGINE_BIN = "/usr/local/bin/sing-box"
ENGINE_CHECK_TIMEOUT_SEC = 60
STEP_COUNT = 6

DEPRECATED_INBOUND_FIELDS = {
    "sniff": "use a route rule with action 'sniff' instead",
    "sniff_override_destination": "use route rules instead",
    "domain_strategy": "use the global dns.strategy instead",
}
DEPRECATED_OUTBOUND_FIELDS = {
    "domain_strategy": "use the global dns.strategy instead",
}
REALITY_REQUIRED_FIELDS = ("private_key", "short_id", "handshake")

Source = Union[ConfigurationDocument, Dict[str, Any], str, bytes, Path]


def _issue(stage: Stage, kind: IssueKind, field: str, message: str, severity: Severity = Severity.ERROR) -> ValidationIssue:
    return ValidationIssue(stage=stage, severity=severity, field=field, message=message, kind=kind)


def _is_hex(s: str) -> bool:
    return bool(s) and all(c in "0123456789abcdefABCDEF" for c in s)


def _inbounds(doc: Dict[str, Any]) -> List[Tuple[int, Dict[str, Any]]]:
    return [(i, ib) for i, ib in enumerate(doc.get("inbounds") or []) if isinstance(ib, dict)]


def _users(ib: Dict[str, Any]) -> List[Any]:
    users = ib.get("users")
    return users if isinstance(users, list) else []


def _label(idx: int, ib: Dict[str, Any]) -> str:
    return str(ib.get("tag") or ib.get("type") or f"inbounds[{idx}]")


# ---------------------------------------------------------------------------
# Stage 1: syntax
# ---------------------------------------------------------------------------

def check_syntax(source: Source) -> Tuple[Optional[Dict[str, Any]], List[ValidationIssue]]:
    def fail(msg: str) -> Tuple[None, List[ValidationIssue]]:
        return None, [_issue(Stage.SYNTAX, IssueKind.SYNTAX_ERROR, "$", msg)]

    if isinstance(source, ConfigurationDocument):
        return source.to_dict(), []
    if isinstance(source, dict):
        return source, []

    if isinstance(source, Path):
        if not source.is_file():
            return fail(f"JSON file not found: {source}")
        try:
            text = source.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return fail(f"JSON file not readable: {source} ({e})")
    elif isinstance(source, bytes):
        try:
            text = source.decode("utf-8")
        except UnicodeDecodeError as e:
            return fail(f"not valid UTF-8: {e}")
    elif isinstance(source, str):
        text = source
    else:
        return fail(f"unsupported document type: {type(source).__name__}")

    if not text.strip():
        return fail("document is empty")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        return fail(f"invalid JSON syntax: {e.msg} (line {e.lineno}, column {e.colno})")
    except RecursionError:
        return fail("invalid JSON: nesting too deep")
    if not isinstance(data, dict):
        return fail(f"top level must be an object, got {type(data).__name__}")
    return data, []


# ---------------------------------------------------------------------------
# Stage 2: schema
# ---------------------------------------------------------------------------

def check_required_sections(doc: Dict[str, Any]) -> List[ValidationIssue]:
    """Structural problems here stop the pipeline."""
    issues: List[ValidationIssue] = []
    for key in ("inbounds", "outbounds"):
        if key not in doc:
            issues.append(_issue(Stage.SCHEMA, IssueKind.SCHEMA_VIOLATION, key, f"missing required section '{key}'"))
        elif not isinstance(doc[key], list):
            issues.append(_issue(Stage.SCHEMA, IssueKind.SCHEMA_VIOLATION, key, f"'{key}' must be an array"))
    return issues


def _selection_of(ib: Dict[str, Any]) -> Tuple[str, str, Optional[str]]:
    transport = ib.get("transport")
    if isinstance(transport, dict) and transport.get("type"):
        t = str(transport["type"])
    elif ib.get("type") == "hysteria2":
        t = "quic"
    else:
        t = "tcp"

    tls = ib.get("tls")
    s = "none"
    if isinstance(tls, dict):
        reality = tls.get("reality")
        if isinstance(reality, dict) and reality.get("enabled", True):
            s = "reality"
        elif tls.get("enabled"):
            s = "tls"

    flow = None
    for u in _users(ib):
        if isinstance(u, dict) and u.get("flow"):
            flow = str(u["flow"])
            break
    return t, s, flow


def _check_reality(idx: int, ib: Dict[str, Any]) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    base = f"inbounds[{idx}]"

    def err(field: str, msg: str, severity: Severity = Severity.ERROR) -> None:
        issues.append(_issue(Stage.SCHEMA, IssueKind.SCHEMA_VIOLATION, field, msg, severity))

    if "reality" in ib:
        err(f"{base}.reality", "reality must be nested under tls.reality, not at the inbound top level")

    tls = ib.get("tls")
    reality = tls.get("reality") if isinstance(tls, dict) else None
    if not isinstance(reality, dict):
        return issues

    rbase = f"{base}.tls.reality"
    if reality.get("enabled") is not True:
        err(f"{rbase}.enabled", "reality enabled flag must be true")
    if tls.get("enabled") is not True:
        err(f"{base}.tls.enabled", "TLS must be enabled when using reality")

    for name in REALITY_REQUIRED_FIELDS:
        if not reality.get(name):
            err(f"{rbase}.{name}", f"missing required reality field '{name}'")

    sids = reality.get("short_id")
    if sids is not None and not isinstance(sids, list):
        err(f"{rbase}.short_id", f"short_id must be an array, got {type(sids).__name__}")
    elif isinstance(sids, list):
        for j, sid in enumerate(sids):
            if not isinstance(sid, str) or not (1 <= len(sid) <= 8 and _is_hex(sid)):
                err(f"{rbase}.short_id[{j}]", f"invalid short ID {sid!r} (must be 1-8 hex chars)")

    hs = reality.get("handshake")
    if isinstance(hs, dict):
        if not hs.get("server"):
            err(f"{rbase}.handshake.server", "handshake server not configured")
        if not hs.get("server_port"):
            err(f"{rbase}.handshake.server_port", "handshake server_port not configured")

    for j, u in enumerate(_users(ib)):
        if not isinstance(u, dict):
            continue
        flow = u.get("flow")
        if not flow:
            err(f"{base}.users[{j}].flow", f"flow not set (vision requires {VISION_FLOW})", Severity.WARNING)
        elif flow != VISION_FLOW:
            err(f"{base}.users[{j}].flow", f"invalid flow value {flow!r}")
    return issues


def check_schema_details(doc: Dict[str, Any]) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []

    seen: Dict[str, int] = {}
    for i, ib in enumerate(doc.get("inbounds") or []):
        if not isinstance(ib, dict):
            issues.append(_issue(Stage.SCHEMA, IssueKind.SCHEMA_VIOLATION, f"inbounds[{i}]", "inbound must be an object"))
            continue
        tag = ib.get("tag")
        if tag is not None and not isinstance(tag, str):
            issues.append(_issue(Stage.SCHEMA, IssueKind.SCHEMA_VIOLATION, f"inbounds[{i}].tag",
                                 f"tag must be a string, got {type(tag).__name__}"))
        elif tag:
            if tag in seen:
                issues.append(_issue(
                    Stage.SCHEMA, IssueKind.SCHEMA_VIOLATION, f"inbounds[{i}].tag",
                    f"duplicate inbound tag '{tag}' (also inbounds[{seen[tag]}])",
                ))
            else:
                seen[tag] = i

        if "users" in ib and not isinstance(ib["users"], list):
            issues.append(_issue(Stage.SCHEMA, IssueKind.SCHEMA_VIOLATION, f"inbounds[{i}].users",
                                 f"users must be an array, got {type(ib['users']).__name__}"))

        t, s, flow = _selection_of(ib)
        try:
            reason = check_pairing(t, s, flow)
        except ConfigError as e:
            reason = e.message
        if reason:
            issues.append(_issue(Stage.SCHEMA, IssueKind.INCOMPATIBLE_COMBINATION, f"inbounds[{i}]", f"{_label(i, ib)}: {reason}"))

        issues.extend(_check_reality(i, ib))

    for i, ob in enumerate(doc.get("outbounds") or []):
        if not isinstance(ob, dict):
            issues.append(_issue(Stage.SCHEMA, IssueKind.SCHEMA_VIOLATION, f"outbounds[{i}]", "outbound must be an object"))
    return issues


# ---------------------------------------------------------------------------
# Stage 3: port conflicts
# ---------------------------------------------------------------------------

def check_port_conflicts(doc: Dict[str, Any]) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    by_port: "OrderedDict[int, List[Tuple[int, str]]]" = OrderedDict()

    for i, ib in _inbounds(doc):
        if "listen_port" not in ib:
            continue
        port = ib["listen_port"]
        if isinstance(port, bool) or not isinstance(port, int) or not 1 <= port <= 65535:
            issues.append(_issue(
                Stage.PORT_CONFLICT, IssueKind.SCHEMA_VIOLATION, f"inbounds[{i}].listen_port",
                f"port must be an integer between 1-65535, got {port!r}",
            ))
            continue
        by_port.setdefault(port, []).append((i, _label(i, ib)))

    for port, users in by_port.items():
        if len(users) < 2:
            continue
        tags = ", ".join(t for _, t in users)
        issues.append(_issue(
            Stage.PORT_CONFLICT, IssueKind.PORT_CONFLICT, f"inbounds[{users[1][0]}].listen_port",
            f"port {port} is used by multiple inbounds: {tags}",
        ))
    return issues


# ---------------------------------------------------------------------------
# Stage 4: TLS consistency
# ---------------------------------------------------------------------------

def check_tls(doc: Dict[str, Any]) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    for i, ib in _inbounds(doc):
        tls = ib.get("tls")
        if not isinstance(tls, dict):
            continue
        base = f"inbounds[{i}].tls"
        reality = tls.get("reality")
        if isinstance(reality, dict) and reality.get("enabled") is True:
            continue
        if tls.get("enabled") is not True:
            continue

        cert = tls.get("certificate_path")
        key = tls.get("key_path")
        acme = tls.get("acme")
        has_manual = bool(cert) and bool(key)
        has_acme = isinstance(acme, dict)

        if bool(cert) != bool(key):
            missing = "key_path" if cert else "certificate_path"
            issues.append(_issue(Stage.TLS, IssueKind.TLS_MISCONFIGURATION, f"{base}.{missing}",
                                 f"{_label(i, ib)}: certificate_path and key_path must be set together"))
        if has_manual and has_acme:
            issues.append(_issue(Stage.TLS, IssueKind.TLS_MISCONFIGURATION, base,
                                 f"{_label(i, ib)}: manual certificate and acme are mutually exclusive"))
        elif not has_manual and not has_acme and not (cert or key):
            issues.append(_issue(Stage.TLS, IssueKind.TLS_MISCONFIGURATION, base,
                                 f"{_label(i, ib)}: TLS enabled but no certificate_path/key_path and no acme block"))

        if has_acme and isinstance(acme.get("dns01_challenge"), dict):
            for flag in ("disable_http_challenge", "disable_tls_alpn_challenge"):
                if acme.get(flag) is not True:
                    issues.append(_issue(Stage.TLS, IssueKind.TLS_MISCONFIGURATION, f"{base}.acme.{flag}",
                                         f"{_label(i, ib)}: dns01_challenge requires {flag}=true"))
    return issues


# ---------------------------------------------------------------------------
# Stage 5: deprecated fields / route rules
# ---------------------------------------------------------------------------

def check_route_rules(doc: Dict[str, Any]) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []

    for i, ib in _inbounds(doc):
        for name, hint in DEPRECATED_INBOUND_FIELDS.items():
            if name in ib:
                issues.append(_issue(Stage.ROUTE_RULES, IssueKind.DEPRECATED_FIELD, f"inbounds[{i}].{name}",
                                     f"deprecated field '{name}' in inbound {_label(i, ib)}: {hint}"))

    for i, ob in enumerate(doc.get("outbounds") or []):
        if not isinstance(ob, dict):
            continue
        for name, hint in DEPRECATED_OUTBOUND_FIELDS.items():
            if name in ob:
                label = ob.get("tag") or ob.get("type") or f"outbounds[{i}]"
                issues.append(_issue(Stage.ROUTE_RULES, IssueKind.DEPRECATED_FIELD, f"outbounds[{i}].{name}",
                                     f"deprecated field '{name}' in outbound {label}: {hint}"))

    route = doc.get("route")
    if route is None:
        if doc.get("inbounds"):
            issues.append(_issue(Stage.ROUTE_RULES, IssueKind.SCHEMA_VIOLATION, "route",
                                 "no route section: sniffing and DNS hijack are not configured", Severity.WARNING))
        return issues
    if not isinstance(route, dict):
        issues.append(_issue(Stage.ROUTE_RULES, IssueKind.SCHEMA_VIOLATION, "route", "'route' must be an object"))
        return issues

    rules = route.get("rules", [])
    if not isinstance(rules, list):
        issues.append(_issue(Stage.ROUTE_RULES, IssueKind.SCHEMA_VIOLATION, "route.rules", "'route.rules' must be an array"))
        return issues

    actions = set()
    for j, rule in enumerate(rules):
        if not isinstance(rule, dict):
            issues.append(_issue(Stage.ROUTE_RULES, IssueKind.SCHEMA_VIOLATION, f"route.rules[{j}]", "rule must be an object"))
            continue
        action = rule.get("action")
        if not action:
            issues.append(_issue(Stage.ROUTE_RULES, IssueKind.SCHEMA_VIOLATION, f"route.rules[{j}].action",
                                 "route rule has no action"))
            continue
        if not isinstance(action, str):
            issues.append(_issue(Stage.ROUTE_RULES, IssueKind.SCHEMA_VIOLATION, f"route.rules[{j}].action",
                                 f"action must be a string, got {type(action).__name__}"))
            continue
        if len(rule) == 1:
            issues.append(_issue(Stage.ROUTE_RULES, IssueKind.SCHEMA_VIOLATION, f"route.rules[{j}]",
                                 f"route rule '{action}' has no match criteria", Severity.WARNING))
        actions.add(action)

    if doc.get("inbounds"):
        for wanted in ("sniff", "hijack-dns"):
            if wanted not in actions:
                issues.append(_issue(Stage.ROUTE_RULES, IssueKind.SCHEMA_VIOLATION, "route.rules",
                                     f"no route rule with action '{wanted}'", Severity.WARNING))
    return issues


# ---------------------------------------------------------------------------
# Stage 6: engine check (optional)
# ---------------------------------------------------------------------------

def engine_available(engine_bin: Optional[str]) -> bool:
    return bool(engine_bin) and os.path.isfile(engine_bin) and os.access(engine_bin, os.X_OK)


def run_engine_check(engine_bin: str, config_path: str) -> List[ValidationIssue]:
    """`<engine> check -c <file>`; the exit code is the verdict, not the output text."""
    try:
        r = subprocess.run(
            [engine_bin, "check", "-c", config_path],
            capture_output=True,
            text=True,
            timeout=ENGINE_CHECK_TIMEOUT_SEC,
        )
    except subprocess.TimeoutExpired:
        return [_issue(Stage.ENGINE, IssueKind.ENGINE_REJECTED, "$",
                       f"engine check timed out after {ENGINE_CHECK_TIMEOUT_SEC}s")]
    except OSError as e:
        return [_issue(Stage.ENGINE, IssueKind.ENGINE_REJECTED, "$",
                       f"could not run {engine_bin}: {e}", Severity.WARNING)]

    if r.returncode != 0:
        out = ((r.stderr or "") + (r.stdout or "")).strip()
        return [_issue(Stage.ENGINE, IssueKind.ENGINE_REJECTED, "$",
                       f"engine check failed (exit {r.returncode}): {out}")]
    return []


class ValidationPipeline:
    def __init__(self, engine_bin: Optional[str] = None, log: Optional[Logger] = None):
        self.engine_bin = engine_bin
        self.log = log or Logger(quiet=True)

    def _step(self, n: int, text: str) -> None:
        self.log.step(n, STEP_COUNT, text)

    def run(self, source: Source) -> ValidationReport:
        log = self.log
        log.info("Running configuration validation pipeline...")
        issues: List[ValidationIssue] = []

        self._step(1, "Validating JSON syntax")
        doc, found = check_syntax(source)
        issues.extend(found)
        if doc is None:
            log.err("Configuration validation failed at step 1: JSON syntax")
            return ValidationReport(issues)

        self._step(2, "Validating sing-box schema")
        found = check_required_sections(doc)
        issues.extend(found)
        if found:
            log.err("Configuration validation failed at step 2: sing-box schema")
            return ValidationReport(issues)
        issues.extend(check_schema_details(doc))

        self._step(3, "Checking for port conflicts")
        issues.extend(check_port_conflicts(doc))

        self._step(4, "Validating TLS configuration")
        issues.extend(check_tls(doc))

        self._step(5, "Validating route rules")
        issues.extend(check_route_rules(doc))

        self._step(6, "Running sing-box binary check")
        report = ValidationReport(list(issues))
        if not report.accepted:
            log.dbg("skipping engine check: document already rejected")
        elif not engine_available(self.engine_bin):
            log.dbg(f"engine binary not available ({self.engine_bin}), skipping binary check")
        else:
            issues.extend(self._engine_check(str(self.engine_bin), source, doc))

        report = ValidationReport(issues)
        if report.accepted:
            log.ok("Configuration validation passed all checks")
        else:
            log.err(f"Configuration validation failed with {len(report.errors)} error(s)")
        return report

    def _engine_check(self, engine: str, source: Source, doc: Dict[str, Any]) -> List[ValidationIssue]:
        if isinstance(source, Path):
            return run_engine_check(engine, str(source))

        fd, tmp = tempfile.mkstemp(prefix="sbx-check-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(doc, f, ensure_ascii=False, indent=2)
            return run_engine_check(engine, tmp)
        finally:
            os.unlink(tmp)


def validate(source: Source, engine_bin: Optional[str] = None, log: Optional[Logger] = None) -> ValidationReport:
    return ValidationPipeline(engine_bin=engine_bin, log=log).run(source)
