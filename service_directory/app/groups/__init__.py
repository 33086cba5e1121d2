"""
Group algebra for the Directory Service.
"""

from .algebra import GroupAlgebra

__all__ = ["GroupAlgebra"]
