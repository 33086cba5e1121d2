"""
Bootstrap package.

Validates directory settings and TLS material, then checks that the
directory answers before the service accepts traffic.
"""

from .health_check import DirectoryBootstrap

__all__ = ["DirectoryBootstrap"]
