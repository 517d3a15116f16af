#!/usr/bin/env python3
"""
main.py - Quick-start entry point.

    python main.py generate target.jpg cells/ -o output/mosaic.png
    python main.py plan target.jpg cells/ --pattern parquet

Or use the module directly:

    python -m mosaic_creator.cli generate --help
"""

from mosaic_creator.cli import app

if __name__ == "__main__":
    app()
