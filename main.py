#!/usr/bin/env python3
"""
main.py — Quick-start entry point.

    python main.py mono photo.jpg -a atkinson
    python main.py color photo.jpg -n 16 -a bayer8x8
    python main.py batch -i photos/ -a floyd_steinberg -a riemersma
    python main.py list

Same commands as the installed ``ditherkit`` script.
"""

from ditherkit.cli import app

if __name__ == "__main__":
    app()
