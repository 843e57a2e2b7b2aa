"""Error taxonomy for untrusted model responses."""

from __future__ import annotations

from typing import Any, Sequence


class ResponseError(Exception):
    """Base class for every failure to turn model output into a stage result.

    Attributes:
        stage: Pipeline stage whose response failed.
        code: Stable machine-readable error code.
    """

    code = "RESPONSE_ERROR"

    def __init__(self, message: str, stage: str) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "stage": self.stage, "message": self.message}


class ParseError(ResponseError):
    """The response could not be parsed as JSON or split into text sections."""

    code = "PARSE_ERROR"

    def __init__(self, message: str, stage: str, raw_response: str) -> None:
        super().__init__(message, stage)
        self.raw_response = raw_response


class ValidationError(ResponseError):
    """The response parsed but violates the stage contract.

    ``errors`` holds one human-readable entry per offending field, prefixed
    with its dotted field path.
    """

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, stage: str, errors: Sequence[str] = ()) -> None:
        super().__init__(message, stage)
        self.errors = list(errors)

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "errors": self.errors}


class MismatchError(ResponseError):
    """Plan identity echoed by the model does not match the catalog record."""

    code = "MISMATCH_ERROR"

    def __init__(self, message: str, stage: str, invalid_plan_ids: Sequence[str]) -> None:
        super().__init__(message, stage)
        self.invalid_plan_ids = list(invalid_plan_ids)

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "invalid_plan_ids": self.invalid_plan_ids}


class MappingError(ResponseError):
    """Narrative text could not be mapped onto the recommended plans."""

    code = "MAPPING_ERROR"

    def __init__(self, message: str, stage: str, details: str = "") -> None:
        super().__init__(message, stage)
        self.details = details
