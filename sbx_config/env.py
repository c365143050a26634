from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import find_dotenv, load_dotenv

from .errors import InvalidValue
from .inbounds import require_port
from .pipeline import DEFAULT_ENGINE_BIN


def clean_env_key(v: Optional[str]) -> Optional[str]:
    if not v:
        return None
    v = v.strip()
    # handle .env values like CF_Token="abc..."
    if (v.startswith('"') and v.endswith('"')) or (v.startswith("'") and v.endswith("'")):
        v = v[1:-1].strip()
    return v or None


def env_flag(name: str, default: bool) -> bool:
    v = clean_env_key(os.getenv(name))
    if v is None:
        return default
    if v.lower() in ("1", "true", "yes", "on"):
        return True
    if v.lower() in ("0", "false", "no", "off"):
        return False
    raise InvalidValue(name, f"expected 0/1 or true/false, got {v!r}")


def env_port(name: str, default: int) -> int:
    v = clean_env_key(os.getenv(name))
    if v is None:
        return default
    return require_port(v, name)


@dataclass
class Settings:
    domain: str = ""
    cert_mode: str = ""
    cf_token: str = ""
    cert_fullchain: str = ""
    cert_key: str = ""

    reality_port: int = 443
    ws_port: int = 8444
    hy2_port: int = 8443
    sni: str = "www.microsoft.com"

    uuid: str = ""
    private_key: str = ""
    short_id: str = ""
    hy2_password: str = ""

    enable_reality: bool = True
    enable_ws: bool = True
    enable_hy2: bool = True
    dual_stack: bool = False
    log_level: str = "warn"

    sb_bin: str = DEFAULT_ENGINE_BIN
    sb_conf: str = "/etc/sing-box/config.json"


def load_settings_from_env() -> Settings:
    load_dotenv(find_dotenv(usecwd=True))

    def s(name: str, default: str = "") -> str:
        return clean_env_key(os.getenv(name)) or default

    d = Settings()
    return Settings(
        domain=s("DOMAIN"),
        cert_mode=s("CERT_MODE"),
        # CF_Token is the historic name; CF_API_TOKEN wins when both are set
        cf_token=s("CF_API_TOKEN") or s("CF_Token"),
        cert_fullchain=s("CERT_FULLCHAIN"),
        cert_key=s("CERT_KEY"),

        reality_port=env_port("REALITY_PORT", d.reality_port),
        ws_port=env_port("WS_PORT", d.ws_port),
        hy2_port=env_port("HY2_PORT", d.hy2_port),
        sni=s("SNI_DEFAULT", d.sni),

        uuid=s("UUID"),
        private_key=s("PRIV"),
        short_id=s("SID"),
        hy2_password=s("HY2_PASS"),

        enable_reality=env_flag("ENABLE_REALITY", True),
        enable_ws=env_flag("ENABLE_WS", True),
        enable_hy2=env_flag("ENABLE_HY2", True),
        dual_stack=env_flag("IPV6", False),
        log_level=s("LOG_LEVEL", d.log_level),

        sb_bin=s("SB_BIN", d.sb_bin),
        sb_conf=s("SB_CONF", d.sb_conf),
    )
