import json
import re

_FENCED = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def extract_json_text(text: str) -> str:
    """Unwrap a fenced block if present, else cut from the first '{' to the last '}'."""
    candidate = (text or "").strip()
    fenced = _FENCED.search(candidate)
    if fenced:
        return fenced.group(1).strip()
    start = candidate.find("{")
    if start == -1:
        return candidate
    end = candidate.rfind("}")
    return candidate[start : end + 1] if end > start else candidate[start:]


def parse_llm_json(text: str, *, strict: bool = False):
    """Parse a JSON object out of model output.

    Lenient mode returns {} when nothing parses. Strict mode raises ValueError
    so the caller can fail the operation.
    """
    if not text or not text.strip():
        if strict:
            raise ValueError("empty model output")
        return {}
    try:
        return json.loads(extract_json_text(text))
    except json.JSONDecodeError as exc:
        if strict:
            raise ValueError(f"invalid JSON: {exc.msg} at position {exc.pos}") from exc
        return {}
