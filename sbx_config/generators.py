from __future__ import annotations

import secrets
import string
import subprocess
import uuid
from typing import Tuple

from .errors import EngineError


def generate_uuid() -> str:
    return str(uuid.uuid4())


def generate_short_id() -> str:
    """8 hex chars, the sing-box short ID length."""
    return secrets.token_hex(4)


def generate_password(length: int = 24) -> str:
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_reality_keypair(engine_bin: str) -> Tuple[str, str]:
    """Return (private_key, public_key) from `<engine> generate reality-keypair`."""
    try:
        r = subprocess.run([engine_bin, "generate", "reality-keypair"], capture_output=True, text=True, timeout=30)
    except (OSError, subprocess.TimeoutExpired) as e:
        raise EngineError(f"Failed to run {engine_bin}: {e}")
    if r.returncode != 0:
        raise EngineError(f"Failed to generate Reality keypair (exit {r.returncode}): {(r.stderr or '').strip()}")

    priv = pub = ""
    for line in (r.stdout or "").splitlines():
        k, _, v = line.partition(":")
        if k.strip() == "PrivateKey":
            priv = v.strip()
        elif k.strip() == "PublicKey":
            pub = v.strip()
    if not priv or not pub:
        raise EngineError("Failed to extract keys from Reality keypair output")
    return priv, pub
