"""Entry point for `python -m compgraph`.

Usage:
    python -m compgraph
"""

from __future__ import annotations

from compgraph.app import run

run()
