import re
import json


def safe_parse_json_block(text: str):
    """Try to find and parse the first JSON-like block in text."""
    # The model is asked for bare JSON but sometimes wraps it in prose or
    # code fences, so fall back to scanning for the outermost braces.
    if not text:
        return None
    start = text.find('{')
    end = text.rfind('}')
    if start != -1 and end != -1 and end > start:
        try:
            return json.loads(text[start:end+1])
        except ValueError:
            return None
    return None


def capitalize_name(name: str) -> str:
    if not name:
        return ""
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), name.lower())


def normalize_name(name: str) -> str:
    """Trimmed, case-folded name used for the loose appointment/patient join."""
    return (name or "").strip().lower()
