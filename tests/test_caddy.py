import pytest

from sbx_config.caddy import render_caddyfile
from sbx_config.errors import IncompatibleCombination, InvalidValue, MissingField


def test_defaults():
    text = render_caddyfile("example.com")
    assert "http_port 80" in text
    assert "https_port 8445" in text
    assert "email admin@example.com" in text
    assert "example.com:8445 {" in text
    assert ":8080 {" in text
    assert "admin off" in text


@pytest.mark.parametrize("port", [443, 8443, 8444])
def test_https_port_must_avoid_engine_ports(port):
    with pytest.raises(IncompatibleCombination):
        render_caddyfile("example.com", https_port=port)


def test_ports_must_differ():
    with pytest.raises(IncompatibleCombination):
        render_caddyfile("example.com", http_port=8080, fallback_port=8080)


def test_needs_domain():
    with pytest.raises(MissingField):
        render_caddyfile("  ")


def test_bad_port():
    with pytest.raises(InvalidValue):
        render_caddyfile("example.com", fallback_port=0)
