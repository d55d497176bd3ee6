"""
Assistant output normalization
- The CLI prints either plain text or a JSON payload (JSON output mode).
- For mappings, a human-readable field is preferred over the raw payload.
"""
import json
from typing import Any

# Checked in order; `result` is what the assistant CLI emits in JSON mode
PREFERRED_FIELDS = ("response", "output", "result")


def format_json_output(payload: Any) -> str:
    if isinstance(payload, str):
        return payload
    if isinstance(payload, dict):
        for key in PREFERRED_FIELDS:
            value = payload.get(key)
            if value:
                return value if isinstance(value, str) else json.dumps(value, indent=2, ensure_ascii=False)
    return json.dumps(payload, indent=2, ensure_ascii=False)


def parse_cli_output(stdout: str) -> str:
    """Return display text for raw stdout; non-JSON output is passed through untouched."""
    text = stdout.strip()
    if not text:
        return stdout
    try:
        payload = json.loads(text)
    except ValueError:
        return stdout
    return format_json_output(payload)
