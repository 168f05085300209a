"""
Kernel parameter tuning required by Elasticsearch.
"""

import logging
import re
from pathlib import Path
from typing import Tuple

from .base import ProvisionContext, Step, StepResult

logger = logging.getLogger(__name__)


def persist_sysctl(text: str, key: str, value: str) -> Tuple[str, bool]:
    """
    Ensure ``key=value`` is the active assignment in sysctl.conf text.

    Returns:
        (new_text, changed)
    """
    pattern = re.compile(rf"^\s*{re.escape(key)}\s*=\s*(.*?)\s*$")
    lines = text.splitlines()
    found = False
    changed = False

    for i, line in enumerate(lines):
        m = pattern.match(line)
        if not m:
            continue
        found = True
        if m.group(1) != value:
            lines[i] = f"{key}={value}"
            changed = True

    if not found:
        lines.append(f"{key}={value}")
        changed = True

    new_text = "\n".join(lines) + "\n" if lines else ""
    return new_text, changed


class HostTuning(Step):
    name = "host-tuning"

    def run(self, ctx: ProvisionContext) -> StepResult:
        settings = ctx.settings
        host = ctx.host
        key = settings.sysctl_key
        value = str(settings.sysctl_value)
        actions = []

        current = host.run(["sysctl", "-n", key], check=False).stdout.strip()
        if current != value:
            logger.info("Setting %s=%s (was %s)", key, value, current or "unset")
            host.run(["sysctl", "-w", f"{key}={value}"], privileged=True)
            actions.append("session")

        conf = Path(settings.sysctl_file)
        text = conf.read_text() if conf.exists() else ""
        new_text, changed = persist_sysctl(text, key, value)
        if changed:
            logger.info("Persisting %s=%s in %s", key, value, conf)
            host.write_text(conf, new_text)
            actions.append("persisted")

        return self.result(
            changed=bool(actions),
            message=f"{key}={value}" + (f" ({', '.join(actions)})" if actions else " already set"),
            details={"key": key, "value": value, "actions": actions},
        )
