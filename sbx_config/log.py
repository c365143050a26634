from __future__ import annotations

import sys
from dataclasses import dataclass


@dataclass
class Logger:
    """Console output for the builders and the validation pipeline.

    Errors go to stderr so `generate --dry-run` output stays pipeable.
    """

    quiet: bool = False
    debug: bool = False

    def info(self, msg: str) -> None:
        if not self.quiet:
            print(msg)

    def step(self, n: int, total: int, msg: str) -> None:
        if not self.quiet:
            print(f"  [{n}/{total}] {msg}...")

    def ok(self, msg: str) -> None:
        if not self.quiet:
            print(f"✅ {msg}")

    def warn(self, msg: str) -> None:
        if not self.quiet:
            print(f"⚠️  {msg}")

    def err(self, msg: str) -> None:
        if not self.quiet:
            print(f"❌ {msg}", file=sys.stderr)

    def dbg(self, msg: str) -> None:
        if self.debug and not self.quiet:
            print(f"[DBG] {msg}")
