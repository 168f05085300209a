"""
Structural patches for the stack's compose manifest.
"""

from __future__ import annotations

import copy
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List

import yaml

from ..errors import ManifestError
from .base import ProvisionContext, Step, StepResult

logger = logging.getLogger(__name__)

PRIMARY_SERVICE = "opencti"
CACHE_SERVICE = "redis"

REDIS_SERVICE: Dict[str, Any] = {
    "image": "redis:6.2",
    "container_name": "opencti_redis",
    "restart": "unless-stopped",
    "healthcheck": {
        "test": ["CMD", "redis-cli", "ping"],
        "interval": "10s",
        "retries": 5,
        "start_period": "5s",
    },
}


@dataclass
class ManifestPatch:
    name: str
    needed: Callable[[Dict[str, Any]], bool]
    apply: Callable[[Dict[str, Any]], None]


@dataclass
class ManifestPatchResult:
    path: str
    applied: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    backup: str | None = None

    @property
    def changed(self) -> bool:
        return bool(self.applied)


def _services(doc: Dict[str, Any]) -> Dict[str, Any]:
    services = doc.get("services")
    if not isinstance(services, dict):
        raise ManifestError("Manifest has no 'services' mapping")
    return services


def _primary(doc: Dict[str, Any]) -> Dict[str, Any]:
    services = _services(doc)
    svc = services.get(PRIMARY_SERVICE)
    if not isinstance(svc, dict):
        raise ManifestError(f"Manifest does not define the '{PRIMARY_SERVICE}' service")
    return svc


def _depends_on_names(svc: Dict[str, Any]) -> List[str]:
    deps = svc.get("depends_on")
    if isinstance(deps, dict):
        return list(deps.keys())
    if isinstance(deps, list):
        return [str(d) for d in deps]
    return []


def _network_names(networks: Any) -> List[str]:
    if isinstance(networks, dict):
        return list(networks.keys())
    if isinstance(networks, list):
        return [str(n) for n in networks]
    return []


# redis service

def _redis_missing(doc):
    return CACHE_SERVICE not in _services(doc)


def _add_redis(doc):
    # insert first so it reads like the hand-maintained manifests
    services = _services(doc)
    doc["services"] = {CACHE_SERVICE: copy.deepcopy(REDIS_SERVICE), **services}


# opencti -> redis dependency edge

def _edge_missing(doc):
    return CACHE_SERVICE not in _depends_on_names(_primary(doc))


def _add_edge(doc):
    svc = _primary(doc)
    deps = svc.get("depends_on")
    if isinstance(deps, dict):
        deps[CACHE_SERVICE] = {"condition": "service_healthy"}
    elif isinstance(deps, list):
        deps.append(CACHE_SERVICE)
    else:
        svc["depends_on"] = [CACHE_SERVICE]


# redis joins the primary service's networks

def _networks_missing(doc):
    wanted = _network_names(_primary(doc).get("networks"))
    redis = _services(doc).get(CACHE_SERVICE)
    if not wanted or not isinstance(redis, dict):
        return False
    have = _network_names(redis.get("networks"))
    return any(n not in have for n in wanted)


def _add_networks(doc):
    wanted = _network_names(_primary(doc).get("networks"))
    redis = _services(doc)[CACHE_SERVICE]
    current = redis.get("networks")
    if isinstance(current, dict):
        for n in wanted:
            current.setdefault(n, None)
    else:
        have = _network_names(current)
        redis["networks"] = have + [n for n in wanted if n not in have]


DEFAULT_PATCHES: List[ManifestPatch] = [
    ManifestPatch("redis_service", _redis_missing, _add_redis),
    ManifestPatch("opencti_depends_on_redis", _edge_missing, _add_edge),
    ManifestPatch("redis_networks", _networks_missing, _add_networks),
]


def load_manifest(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ManifestError(f"Manifest not found: {path}")
    try:
        doc = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ManifestError(f"Manifest is not valid YAML: {e}")
    if not isinstance(doc, dict):
        raise ManifestError(f"Manifest must be a mapping: {path}")
    return doc


def dump_manifest(doc: Dict[str, Any]) -> str:
    return yaml.safe_dump(doc, sort_keys=False, default_flow_style=False)


def patch_manifest(path: Path, patches: List[ManifestPatch] = None) -> ManifestPatchResult:
    """
    Apply every structurally-absent patch to the manifest at ``path``.

    The file is only rewritten when something changed, so a patched
    manifest is a fixed point. The first rewrite keeps a ``.orig`` copy.
    """
    patches = DEFAULT_PATCHES if patches is None else patches
    path = Path(path)
    doc = load_manifest(path)
    result = ManifestPatchResult(path=str(path))

    _primary(doc)
    for patch in patches:
        if patch.needed(doc):
            patch.apply(doc)
            result.applied.append(patch.name)
        else:
            result.skipped.append(patch.name)

    if result.changed:
        backup = path.with_name(path.name + ".orig")
        if not backup.exists():
            shutil.copy2(path, backup)
            result.backup = str(backup)
        path.write_text(dump_manifest(doc))

    return result


class ManifestPatcher(Step):
    name = "manifest"

    def __init__(self, patches: List[ManifestPatch] = None):
        self.patches = patches

    def run(self, ctx: ProvisionContext) -> StepResult:
        result = patch_manifest(ctx.settings.manifest_path, self.patches)
        for name in result.applied:
            logger.info("Manifest patch applied: %s", name)
        return self.result(
            changed=result.changed,
            message=f"applied {', '.join(result.applied)}" if result.applied else "already patched",
            details={"applied": result.applied, "skipped": result.skipped, "backup": result.backup},
        )
