"""
Entry point for running live-orb as a module.

Usage: python -m live_orb
"""

from live_orb.cli import main

if __name__ == "__main__":
    main()
