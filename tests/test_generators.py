import re
import subprocess

import pytest

from sbx_config import generators
from sbx_config.errors import EngineError
from sbx_config.inbounds import validate_short_id


def test_uuid_and_short_id():
    assert re.match(r"^[0-9a-f-]{36}$", generators.generate_uuid())
    sid = generators.generate_short_id()
    assert len(sid) == 8
    assert validate_short_id(sid) == sid


def test_password():
    pw = generators.generate_password()
    assert len(pw) == 24 and pw.isalnum()
    assert generators.generate_password() != pw


def fake_run(returncode=0, stdout="", stderr=""):
    def run(cmd, **kwargs):
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)
    return run


def test_reality_keypair(monkeypatch):
    out = "PrivateKey: UuMBgl7MXTPx9inmQp2UC7Jcnwc6XYbwDNebonM-FCc\nPublicKey: jNXHt1yRo0vDuchQlIP6Z0ZvjT3KtzVI-T4E7RoLJS0\n"
    monkeypatch.setattr(generators.subprocess, "run", fake_run(stdout=out))
    priv, pub = generators.generate_reality_keypair("/usr/local/bin/sing-box")
    assert priv == "UuMBgl7MXTPx9inmQp2UC7Jcnwc6XYbwDNebonM-FCc"
    assert pub == "jNXHt1yRo0vDuchQlIP6Z0ZvjT3KtzVI-T4E7RoLJS0"


def test_reality_keypair_engine_fails(monkeypatch):
    monkeypatch.setattr(generators.subprocess, "run", fake_run(returncode=1, stderr="unknown command"))
    with pytest.raises(EngineError):
        generators.generate_reality_keypair("/usr/local/bin/sing-box")


def test_reality_keypair_garbled_output(monkeypatch):
    monkeypatch.setattr(generators.subprocess, "run", fake_run(stdout="PrivateKey:\n"))
    with pytest.raises(EngineError):
        generators.generate_reality_keypair("/usr/local/bin/sing-box")


def test_reality_keypair_missing_binary(tmp_path):
    with pytest.raises(EngineError):
        generators.generate_reality_keypair(str(tmp_path / "sing-box"))
