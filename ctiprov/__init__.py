"""
ctiprov - Idempotent provisioner for the OpenCTI docker stack.

This package provides a CLI that installs, health-checks and removes an
OpenCTI deployment (and optionally the Portainer UI) on a single host.
"""

__version__ = "0.1.0"
