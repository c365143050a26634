from __future__ import annotations

from typing import Dict

import requests

from .errors import SbxError
from .log import Logger
from .tls import validate_cf_api_token

API_BASE = "https://api.cloudflare.com/client/v4"


class CloudflareClient:
    """Pre-flight check of the DNS-01 token before it is baked into the config."""

    def __init__(self, log: Logger):
        self.log = log
        self.s = requests.Session()

    def _headers(self, token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }

    def verify_token(self, token: str) -> bool:
        tok = validate_cf_api_token(token)
        try:
            r = self.s.get(f"{API_BASE}/user/tokens/verify", headers=self._headers(tok), timeout=30)
        except requests.RequestException as e:
            raise SbxError(f"Cloudflare token check failed: {e}")

        if r.status_code in (400, 401, 403):
            self.log.warn(f"Cloudflare rejected the API token ({r.status_code})")
            return False
        if r.status_code != 200:
            raise SbxError(f"Cloudflare token check failed ({r.status_code}): {r.text}")

        body = r.json()
        status = (body.get("result") or {}).get("status")
        if body.get("success") and status == "active":
            self.log.ok("Cloudflare API token is active")
            return True
        self.log.warn(f"Cloudflare API token is not active (status={status})")
        return False
