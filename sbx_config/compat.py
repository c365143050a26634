from __future__ import annotations

from typing import Optional, Union

from .errors import IncompatibleCombination, InvalidValue
from .models import VISION_FLOW, ProtocolSelection, Security, Transport

KNOWN_FLOWS = {VISION_FLOW}


def check_pairing(
    transport: Union[str, Transport],
    security: Union[str, Security],
    flow: Optional[str] = None,
) -> Optional[str]:
    """Return the reason a (transport, security, flow) triple is illegal, or None.

    Unknown transport/security tags raise UnsupportedMode; an unknown flow
    raises InvalidValue. Only legal-but-incompatible combinations come back
    as a reason string.
    """
    t = Transport.parse(transport)
    s = Security.parse(security)
    f = (flow or "").strip()

    if s is Security.REALITY and t is not Transport.TCP:
        return f"reality requires tcp transport, got {t.value}"

    if f and f not in KNOWN_FLOWS:
        raise InvalidValue("flow", f"unknown flow {f!r}")

    if f == VISION_FLOW and not (t is Transport.TCP and s is Security.REALITY):
        return f"flow {VISION_FLOW} is only valid with tcp+reality, got {t.value}+{s.value}"

    return None


def validate_pairing(
    transport: Union[str, Transport],
    security: Union[str, Security],
    flow: Optional[str] = None,
) -> None:
    reason = check_pairing(transport, security, flow)
    if reason:
        raise IncompatibleCombination("protocol", reason)


def validate_selection(sel: ProtocolSelection) -> None:
    validate_pairing(sel.transport, sel.security, sel.flow)
