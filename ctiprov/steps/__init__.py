"""
Provisioning steps, in the order the provisioner runs them.
"""

from .base import ProvisionContext, Step, StepResult
from .dependencies import DependencyEnsurer
from .workspace import WorkspaceEnsurer
from .envfile import ConfigurationWriter
from .manifest import ManifestPatcher
from .tuning import HostTuning
from .launcher import Launcher
from .portainer import PortainerInstaller

__all__ = [
    "ProvisionContext",
    "Step",
    "StepResult",
    "DependencyEnsurer",
    "WorkspaceEnsurer",
    "ConfigurationWriter",
    "ManifestPatcher",
    "HostTuning",
    "Launcher",
    "PortainerInstaller",
]
