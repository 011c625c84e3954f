"""Extraction of a single JSON object from raw generator output.

Generators wrap their answers in a transport envelope, markdown fences, or
stray prose. ``extract_json_object`` peels those layers in a fixed order:
envelope, fences, outermost brace span, decode.
"""

from __future__ import annotations

import json
from typing import Any, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from .exceptions import CapabilityError, ParseError, StructuralError

PREVIEW_LENGTH = 200

ModelT = TypeVar("ModelT", bound=BaseModel)


def preview(text: str, length: int = PREVIEW_LENGTH) -> str:
    """Shorten text for inclusion in an error message."""
    text = text.strip()
    if len(text) <= length:
        return text
    return text[:length] + "..."


def unwrap_envelope(text: str) -> str:
    """
    Unwrap a CLI result envelope of the form
    ``{"type": ..., "result": "...", "is_error": bool}``.

    Text that is not such an envelope is returned unchanged.

    Raises:
        CapabilityError: if the envelope reports an error
    """
    stripped = text.strip()
    if not stripped.startswith("{"):
        return stripped
    try:
        wrapper = json.loads(stripped)
    except json.JSONDecodeError:
        return stripped
    if not isinstance(wrapper, dict) or "type" not in wrapper or not isinstance(wrapper.get("result"), str):
        return stripped
    if wrapper.get("is_error"):
        raise CapabilityError(f"generator reported an error: {preview(wrapper['result'])}")
    return wrapper["result"].strip()


def strip_code_fences(text: str) -> str:
    """Remove a leading ``` or ```json fence and everything after the last closing fence."""
    text = text.strip()
    if not text.startswith("```"):
        return text
    first_newline = text.find("\n")
    body = text[first_newline + 1:] if first_newline != -1 else text[3:]
    closing = body.rfind("```")
    if closing != -1:
        body = body[:closing]
    return body.strip()


def extract_json_object(raw: str) -> dict[str, Any]:
    """
    Extract and decode the JSON object carried by a generator response.

    Args:
        raw: Raw generator output

    Returns:
        The decoded object

    Raises:
        CapabilityError: if a result envelope reports an error
        ParseError: if no JSON object can be located or decoded
    """
    if not raw or not raw.strip():
        raise ParseError("empty response from generator")

    text = strip_code_fences(unwrap_envelope(raw))

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end < start:
        raise ParseError(
            f"no JSON object found in response: {preview(text)}",
            preview=preview(text),
        )

    candidate = text[start:end + 1]
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        context_start = max(0, e.pos - 40)
        excerpt = candidate[context_start:e.pos + 40]
        raise ParseError(
            f"invalid JSON at position {e.pos}: {e.msg} (near: {excerpt!r})",
            preview=preview(candidate),
        ) from e

    if not isinstance(data, dict):
        raise ParseError(f"expected a JSON object, got {type(data).__name__}", preview=preview(candidate))

    return data


def parse_model(
    raw: str,
    model_cls: type[ModelT],
    what: str = "response",
    context: Optional[dict[str, Any]] = None,
) -> ModelT:
    """
    Extract a JSON object and validate it into a pydantic model.

    Args:
        raw: Raw generator output
        model_cls: Target model class
        what: Name of the payload, used as the error field path
        context: Validation context handed to the model validators

    Raises:
        CapabilityError: if a result envelope reports an error
        ParseError: if no JSON object can be extracted
        StructuralError: if the object does not fit the model
    """
    data = extract_json_object(raw)
    try:
        return model_cls.model_validate(data, context=context)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        field = f"{what}.{location}" if location else what
        raise StructuralError(field, first.get("msg", "invalid value")) from e
