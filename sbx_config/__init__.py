"""sbx-config: compile and validate sing-box server configuration."""

from .assembler import DeploymentPlan, assemble, write_config
from .base import build_base_document, build_route
from .compat import check_pairing, validate_pairing, validate_selection
from .inbounds import compile_hysteria2_inbound, compile_reality_inbound, compile_ws_inbound
from .pipeline import ValidationPipeline, validate
from .tls import build_tls_block

__version__ = "0.1.0"

__all__ = [
    "DeploymentPlan",
    "ValidationPipeline",
    "assemble",
    "build_base_document",
    "build_route",
    "build_tls_block",
    "check_pairing",
    "compile_hysteria2_inbound",
    "compile_reality_inbound",
    "compile_ws_inbound",
    "validate",
    "validate_pairing",
    "validate_selection",
    "write_config",
]
