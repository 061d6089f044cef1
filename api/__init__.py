"""
procvm Python API

Compile procedures and call them from Python.
"""

from .context import Context, CompiledProc

__all__ = [
    'Context',
    'CompiledProc',
]
