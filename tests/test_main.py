import json

import pytest

from sbx_config import main as cli

pytestmark = pytest.mark.usefixtures("clean_env")

REALITY = [
    "--uuid", "a1b2c3d4-e5f6-7890-1234-567890abcdef",
    "--private-key", "UuMBgl7MXTPx9inmQp2UC7Jcnwc6XYbwDNebonM-FCc",
    "--short-id", "abcdef12",
]


def test_dry_run_prints_json(capsys):
    rc = cli.main(["generate", "--dry-run", "--no-engine-check", *REALITY,
                   "--domain", "example.com", "--cert-mode", "acme", "--hy2-password", "pw-123"])
    assert rc == 0
    doc = json.loads(capsys.readouterr().out)
    assert [ib["tag"] for ib in doc["inbounds"]] == ["in-reality", "in-ws", "in-hy2"]


def test_reality_only_when_no_cert_source(capsys):
    rc = cli.main(["generate", "--dry-run", "--no-engine-check", *REALITY])
    assert rc == 0
    doc = json.loads(capsys.readouterr().out)
    assert [ib["tag"] for ib in doc["inbounds"]] == ["in-reality"]


def test_disable_flags(capsys):
    rc = cli.main(["generate", "--dry-run", "--no-engine-check", *REALITY,
                   "--domain", "example.com", "--cert-mode", "acme", "--no-ws", "--no-hy2", "--dual-stack"])
    assert rc == 0
    doc = json.loads(capsys.readouterr().out)
    assert [ib["tag"] for ib in doc["inbounds"]] == ["in-reality"]
    assert "strategy" not in doc["dns"]


def test_generates_missing_credentials(capsys, monkeypatch):
    monkeypatch.setattr(cli, "generate_reality_keypair", lambda engine: ("generated-private", "generated-public"))
    rc = cli.main(["generate", "--dry-run", "--no-engine-check", "--domain", "example.com", "--cert-mode", "acme"])
    assert rc == 0
    doc = json.loads(capsys.readouterr().out)
    reality = doc["inbounds"][0]["tls"]["reality"]
    assert reality["private_key"] == "generated-private"
    assert len(reality["short_id"][0]) == 8
    assert doc["inbounds"][2]["users"][0]["password"]


def test_writes_config(clean_env):
    out = clean_env / "config.json"
    rc = cli.main(["--quiet", "generate", "--no-engine-check", "--out", str(out), *REALITY])
    assert rc == 0
    assert json.loads(out.read_text(encoding="utf-8"))["inbounds"][0]["tag"] == "in-reality"


def test_rejected_config_exits(clean_env, capsys):
    out = clean_env / "config.json"
    with pytest.raises(SystemExit) as ei:
        cli.main(["--quiet", "generate", "--no-engine-check", "--out", str(out), *REALITY,
                  "--domain", "example.com", "--cert-mode", "acme", "--ws-port", "443", "--hy2-password", "pw"])
    assert "left untouched" in str(ei.value.code)
    assert "port 443" in capsys.readouterr().err
    assert not out.exists()


def test_config_error_exits():
    with pytest.raises(SystemExit) as ei:
        cli.main(["generate", "--dry-run", "--no-engine-check", "--no-reality"])
    assert "MissingField: inbounds" in str(ei.value.code)


def test_env_drives_defaults(monkeypatch, capsys):
    monkeypatch.setenv("UUID", "a1b2c3d4-e5f6-7890-1234-567890abcdef")
    monkeypatch.setenv("PRIV", "UuMBgl7MXTPx9inmQp2UC7Jcnwc6XYbwDNebonM-FCc")
    monkeypatch.setenv("SID", "abcdef12")
    monkeypatch.setenv("REALITY_PORT", "24443")
    rc = cli.main(["generate", "--dry-run", "--no-engine-check"])
    assert rc == 0
    assert json.loads(capsys.readouterr().out)["inbounds"][0]["listen_port"] == 24443


def test_validate_command(clean_env, capsys):
    good = clean_env / "good.json"
    cli.main(["--quiet", "generate", "--no-engine-check", "--out", str(good), *REALITY])
    assert cli.main(["--quiet", "validate", "--no-engine-check", str(good)]) == 0

    bad = clean_env / "bad.json"
    doc = json.loads(good.read_text(encoding="utf-8"))
    doc["inbounds"][0]["sniff"] = True
    bad.write_text(json.dumps(doc), encoding="utf-8")
    assert cli.main(["--quiet", "validate", "--no-engine-check", str(bad)]) == 1
    assert "inbounds[0].sniff" in capsys.readouterr().err


def test_caddyfile_command(capsys):
    assert cli.main(["caddyfile", "--domain", "example.com"]) == 0
    assert "example.com:8445 {" in capsys.readouterr().out


def test_caddyfile_port_clash():
    with pytest.raises(SystemExit) as ei:
        cli.main(["caddyfile", "--domain", "example.com", "--https-port", "443"])
    assert "IncompatibleCombination" in str(ei.value.code)
