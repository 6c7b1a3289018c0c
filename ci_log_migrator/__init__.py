#!/usr/bin/env python3
"""
CI build and release log migration tool
"""

__version__ = "0.1.0"
