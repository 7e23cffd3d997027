"""
Ledger Kernel

Append-only stock ledger for continuous-length raw material:
- Immutable lot (addition) and removal events
- FIFO consumption recomputed on every read
- Mass-per-length derived from cross-section geometry
- Typed errors and structured JSON logging
"""

__version__ = "0.1.0"
