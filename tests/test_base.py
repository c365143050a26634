import pytest

from sbx_config.base import build_base_document, build_route
from sbx_config.errors import InvalidValue
from sbx_config.models import LogLevel


def test_ipv4_only():
    d = build_base_document(dual_stack=False, log_level="warn").to_dict()
    assert d["dns"]["strategy"] == "ipv4_only"
    assert d["log"] == {"level": "warn", "timestamp": True}
    assert d["inbounds"] == []
    assert "route" not in d


def test_dual_stack_has_no_strategy():
    d = build_base_document(dual_stack=True).to_dict()
    assert "strategy" not in d["dns"]
    assert d["dns"]["servers"] == [{"type": "local", "tag": "dns-local"}]


def test_outbounds():
    outbounds = build_base_document(False).to_dict()["outbounds"]
    assert [o["tag"] for o in outbounds] == ["direct", "block"]
    assert outbounds[0]["type"] == "direct"
    assert outbounds[0]["connect_timeout"] == "5s"
    assert "domain_strategy" not in outbounds[0]


@pytest.mark.parametrize("level", [lvl.value for lvl in LogLevel])
def test_all_log_levels(level):
    assert build_base_document(False, level).log["level"] == level


@pytest.mark.parametrize("level", ["verbose", "", "WARNING"])
def test_bad_log_level(level):
    with pytest.raises(InvalidValue):
        build_base_document(False, level)


def test_route():
    d = build_route(["in-reality", "in-ws"]).to_dict()
    assert d["rules"] == [
        {"inbound": ["in-reality", "in-ws"], "action": "sniff"},
        {"protocol": "dns", "action": "hijack-dns"},
    ]
    assert d["auto_detect_interface"] is True
    assert d["default_domain_resolver"] == {"server": "dns-local"}
