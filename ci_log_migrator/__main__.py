#!/usr/bin/env python3
"""
Main execution module for the CI log migration tool
"""

from ci_log_migrator.cli.commands import main

if __name__ == "__main__":
    main()
