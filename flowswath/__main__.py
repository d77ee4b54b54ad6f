#!/usr/bin/env python3
"""
FLOWSWATH Command Line Interface Entry Point
============================================

This module provides the entry point for running FLOWSWATH as a module:
    python -m flowswath

It delegates to the main CLI functionality in cli.py
"""

from .cli import main

if __name__ == "__main__":
    main()
