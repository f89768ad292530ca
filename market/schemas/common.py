from pydantic import ValidationError as PydanticValidationError


def first_error_message(exc: PydanticValidationError) -> str:
    """Human readable message for the first failing field of a form."""
    err = exc.errors()[0]
    field = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
    msg = err.get("msg", "Invalid value")
    return f"{field}: {msg}" if field else msg
