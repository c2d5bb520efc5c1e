"""Error taxonomy for the scoring core.

Two families matter to callers:

* ``ValidationError`` -- the request itself is bad.  Per item in the
  normalizer (collected, the batch continues), fatal to the whole call in the
  mode scorer.  Never worth retrying.
* ``ConfigurationError`` -- a weight or conversion table is missing or
  malformed.  Raised while loading at startup and surfaced to an operator.

A selection without a primary schema is a valid result, not an error.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional


class ScoringError(Exception):
    """Base class for every error raised by ``schema_core``."""

    code: str = "scoring_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ValidationError(ScoringError):
    code = "validation_error"


class InvalidSchemaId(ValidationError):
    code = "InvalidSchemaId"

    def __init__(self, schema_id: object):
        self.schema_id = schema_id
        super().__init__(f"Invalid canonical schema ID: {schema_id!r}")


class OutOfRangeTScore(ValidationError):
    code = "OutOfRangeTScore"

    def __init__(self, tscore: float):
        self.tscore = tscore
        super().__init__(f"T-score out of valid range (20-80): {tscore}")


class InvalidPercentile(ValidationError):
    code = "InvalidPercentile"

    def __init__(self, percentile: float):
        self.percentile = percentile
        super().__init__(f"Cannot convert percentile to T-score (valid range 1-99): {percentile}")


class NoConversionPath(ValidationError):
    code = "NoConversionPath"

    def __init__(self):
        super().__init__("No conversion path available - missing tscore, raw, and percentile values")


class InvalidWeight(ValidationError):
    code = "InvalidWeight"

    def __init__(self, weight: object):
        self.weight = weight
        super().__init__(f"Item weight must be a positive number: {weight!r}")


class UnknownIdentifier(ValidationError):
    code = "UnknownIdentifier"

    def __init__(self, kind: str, identifier: str, hint: str = ""):
        self.kind = kind
        self.identifier = identifier
        msg = f"Unknown {kind}: {identifier!r}"
        if hint:
            msg = f"{msg} ({hint})"
        super().__init__(msg)


class InvalidGateValue(ValidationError):
    code = "InvalidGateValue"

    def __init__(self, gate: str, value: object):
        self.gate = gate
        self.value = value
        super().__init__(f"Gate {gate!r} must be a number between 0 and 1, got {value!r}")


class NoItemsNormalized(ValidationError):
    """Every item in the batch failed; ``failures`` holds the per-item report."""

    code = "NoItemsNormalized"

    def __init__(self, failures: Optional[List[Any]] = None):
        self.failures = list(failures or [])
        super().__init__(f"No items could be normalized ({len(self.failures)} failed)")

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["failures"] = [f.to_dict() if hasattr(f, "to_dict") else f for f in self.failures]
        return out


class ConfigurationError(ScoringError):
    code = "configuration_error"


class MissingWeightTable(ConfigurationError):
    code = "MissingWeightTable"

    def __init__(self, table: str, location: str = ""):
        self.table = table
        self.location = location
        where = f" in {location}" if location else ""
        super().__init__(f"Missing {table}{where}")


class MalformedTableRow(ConfigurationError):
    code = "MalformedTableRow"

    def __init__(self, table: str, line: int, reason: str):
        self.table = table
        self.line = line
        self.reason = reason
        super().__init__(f"{table} line {line}: {reason}")
