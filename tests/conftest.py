import pytest

from sbx_config.assembler import DeploymentPlan


@pytest.fixture
def reality_args():
    return dict(
        uuid="a1b2c3d4-e5f6-7890-1234-567890abcdef",
        port=443,
        listen="::",
        server_name="www.microsoft.com",
        private_key="UuMBgl7MXTPx9inmQp2UC7Jcnwc6XYbwDNebonM-FCc",
        short_id="abcdef12",
    )


@pytest.fixture
def plan():
    return DeploymentPlan(
        uuid="a1b2c3d4-e5f6-7890-1234-567890abcdef",
        private_key="UuMBgl7MXTPx9inmQp2UC7Jcnwc6XYbwDNebonM-FCc",
        short_id="abcdef12",
        domain="example.com",
        cert_mode="acme",
        hy2_password="test-hy2-password-123",
    )


ENV_NAMES = [
    "DOMAIN", "CERT_MODE", "CF_API_TOKEN", "CF_Token", "CERT_FULLCHAIN", "CERT_KEY",
    "REALITY_PORT", "WS_PORT", "HY2_PORT", "SNI_DEFAULT", "UUID", "PRIV", "SID", "HY2_PASS",
    "ENABLE_REALITY", "ENABLE_WS", "ENABLE_HY2", "IPV6", "LOG_LEVEL", "SB_BIN", "SB_CONF",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ENV_NAMES:
        # setenv first so teardown also drops values load_dotenv() wrote
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    return tmp_path
