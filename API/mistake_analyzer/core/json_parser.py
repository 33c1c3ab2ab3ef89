"""Parsing boundary for model output.

Model completions are untrusted free text. The only accepted shape is a JSON
array located between the first ``[`` and the last ``]`` of the completion;
prose around it is tolerated, anything else is a ``ParseError``.
"""
import json

from mistake_analyzer.core.errors import ParseError


def extract_json_array(text: str | None) -> list:
    if not text:
        raise ParseError("No JSON array found in AI response")
    start = text.find("[")
    end = text.rfind("]")
    if start < 0 or end <= start:
        raise ParseError("No JSON array found in AI response")

    snippet = text[start : end + 1]
    try:
        parsed = json.loads(snippet)
    except json.JSONDecodeError as exc:
        raise ParseError(f"AI response contains malformed JSON: {exc.msg}") from exc

    if not isinstance(parsed, list):
        raise ParseError("AI response is not an array")
    return parsed
