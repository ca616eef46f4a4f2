"""Exception types raised by the VCF engine."""


class VCFError(Exception):
    """Base class for all vcf-io errors."""

    pass


class ParseError(VCFError):
    """Raised when a VCF stream is structurally corrupt.

    Too few columns, empty record lines and a missing fileformat line all
    abort the current parse.
    """

    def __init__(self, message: str, line_number: int | None = None):
        self.line_number = line_number
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)


class _FieldError(VCFError):
    """Validation failure tied to a named field and an offending value."""

    kind = "VCF"

    def __init__(
        self,
        field: str,
        message: str,
        value: object = None,
        line_number: int | None = None,
    ):
        self.field = field
        self.value = value
        self.line_number = line_number
        self.reason = message

        location = f", line {line_number}" if line_number is not None else ""
        text = f"Corrupted {self.kind} {field} entry{location}: {message}"
        if value is not None:
            text += f" Offending value: {value}"
        super().__init__(text)


class HeaderValidationError(_FieldError):
    """Raised when a meta-information line violates its declaration rules."""

    kind = "VCF header"


class RecordValidationError(_FieldError):
    """Raised when a record column violates the header or version grammar."""

    kind = "VCF record"


class MutationError(VCFError):
    """Raised when an add/change call is malformed or would duplicate data.

    The object being mutated is left untouched.
    """

    pass


class ConfigValidationError(VCFError, ValueError):
    """Raised when configuration or construction parameters are invalid."""

    pass
