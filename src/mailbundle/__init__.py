"""mailbundle: turn email archives into browsable per-message folders."""

__version__ = "0.1.0"
