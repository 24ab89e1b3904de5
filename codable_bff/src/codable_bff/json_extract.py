# src/codable_bff/json_extract.py

import json
import typing

from .errors import MalformedAIResponse

_decoder = json.JSONDecoder()


def _closing_brace(text: str, start: int) -> typing.Optional[int]:
    """Index of the `}` that balances the `{` at `start`, or None if the text ends first."""
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
    return None


def extract_json_object(text: str) -> dict:
    """
    Returns the first well-formed top-level JSON object found in `text`.

    Model replies often wrap the object in prose or ``` fences, so each
    top-level `{` is tried in turn. A block that fails to decode is skipped
    as a whole; objects nested inside it are never returned on their own.
    A block that never closes means the reply was cut off.
    """
    if not text:
        raise MalformedAIResponse(detail="Empty response")

    index = text.find("{")
    while index != -1:
        try:
            value, _ = _decoder.raw_decode(text, index)
        except ValueError:
            end = _closing_brace(text, index)
            if end is None:
                raise MalformedAIResponse(detail=f"Response ended inside a JSON object: {text[-200:]}")
            index = text.find("{", end + 1)
            continue
        if isinstance(value, dict):
            return value
        index = text.find("{", index + 1)

    raise MalformedAIResponse(detail=f"No JSON object found in response: {text[:200]}")
