import json
from typing import Any


def safe_json_loads(raw: str | None, fallback: Any) -> Any:
    if not raw:
        return fallback
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return fallback


def json_dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=True)


def int_list(raw: str | list | tuple | None) -> list[int]:
    """Decode a JSON id list column (or an already-decoded list), dropping non-integers."""
    payload = list(raw) if isinstance(raw, (list, tuple)) else safe_json_loads(raw, [])
    if not isinstance(payload, list):
        return []
    out: list[int] = []
    for item in payload:
        if isinstance(item, bool):
            continue
        if isinstance(item, int):
            out.append(item)
        elif isinstance(item, str) and item.strip().isdigit():
            out.append(int(item.strip()))
    return out
