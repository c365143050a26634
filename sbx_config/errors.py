from __future__ import annotations

from typing import Optional


class SbxError(Exception):
    pass


class ConfigError(SbxError):
    """A builder refused its inputs. Nothing partial is produced."""

    kind = "ConfigError"

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{self.kind}: {field}: {message}")


class MissingField(ConfigError):
    kind = "MissingField"


class InvalidValue(ConfigError):
    kind = "InvalidValue"


class IncompatibleCombination(ConfigError):
    kind = "IncompatibleCombination"


class UnsupportedMode(ConfigError):
    kind = "UnsupportedMode"


class EngineError(SbxError):
    pass


class PersistError(SbxError):
    def __init__(self, message: str, report: Optional[object] = None):
        self.report = report
        super().__init__(message)
