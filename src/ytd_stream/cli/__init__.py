"""CLI layer — argument parsing, server startup, and error boundary.

This package is the outermost layer of the application.  It may import
from ``api``, ``core`` and ``infra``, but no other layer may
import from ``cli``.
"""
