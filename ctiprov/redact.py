from __future__ import annotations

import re
from typing import Dict

TOKENISH = re.compile(r"(?i)(secret|token|password|pass|apikey|api_key|_user|_id)$")
UUIDISH = re.compile(r"\b[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\b", re.I)
HEX_LONG = re.compile(r"\b[0-9a-f]{32,}\b", re.I)


def redact_string(s: str) -> str:
    s = UUIDISH.sub("[REDACTED]", s)
    return HEX_LONG.sub("[REDACTED]", s)


def redact_env(values: Dict[str, str]) -> Dict[str, str]:
    return {k: ("[REDACTED]" if TOKENISH.search(k) else redact_string(v)) for k, v in values.items()}
