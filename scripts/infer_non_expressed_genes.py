#!/usr/bin/env python3
"""Rank candidate non-expressed genes for contamination estimation."""

from __future__ import annotations

from ambientmarkers.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
