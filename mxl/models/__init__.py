"""
MXL Toolbox Models Module

Model components for simulated mixed logit estimation.
"""

from . import distributions

__all__ = ['distributions']
