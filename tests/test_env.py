import pytest

from sbx_config.env import clean_env_key, env_flag, load_settings_from_env
from sbx_config.errors import InvalidValue

pytestmark = pytest.mark.usefixtures("clean_env")


@pytest.mark.parametrize("raw,expected", [
    (None, None),
    ("", None),
    ("  abc ", "abc"),
    ('"abc"', "abc"),
    ("'abc'", "abc"),
    ('""', None),
])
def test_clean_env_key(raw, expected):
    assert clean_env_key(raw) == expected


def test_defaults():
    st = load_settings_from_env()
    assert st.reality_port == 443
    assert st.ws_port == 8444
    assert st.hy2_port == 8443
    assert st.enable_reality and st.enable_ws and st.enable_hy2
    assert st.dual_stack is False
    assert st.log_level == "warn"
    assert st.sb_conf == "/etc/sing-box/config.json"


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("DOMAIN", "example.com")
    monkeypatch.setenv("CERT_MODE", "cf_dns")
    monkeypatch.setenv("CF_Token", '"old-token"')
    monkeypatch.setenv("WS_PORT", "9444")
    monkeypatch.setenv("ENABLE_HY2", "0")
    monkeypatch.setenv("IPV6", "true")
    st = load_settings_from_env()
    assert st.domain == "example.com"
    assert st.cert_mode == "cf_dns"
    assert st.cf_token == "old-token"
    assert st.ws_port == 9444
    assert st.enable_hy2 is False
    assert st.dual_stack is True


def test_cf_api_token_wins(monkeypatch):
    monkeypatch.setenv("CF_Token", "old")
    monkeypatch.setenv("CF_API_TOKEN", "new")
    assert load_settings_from_env().cf_token == "new"


def test_reads_dotenv_file(tmp_path):
    (tmp_path / ".env").write_text("DOMAIN=from-dotenv.example.com\nREALITY_PORT=24443\n", encoding="utf-8")
    st = load_settings_from_env()
    assert st.domain == "from-dotenv.example.com"
    assert st.reality_port == 24443


def test_bad_flag(monkeypatch):
    monkeypatch.setenv("ENABLE_WS", "maybe")
    with pytest.raises(InvalidValue):
        env_flag("ENABLE_WS", True)


def test_bad_port(monkeypatch):
    monkeypatch.setenv("HY2_PORT", "99999")
    with pytest.raises(InvalidValue):
        load_settings_from_env()
