"""
Main entry point for the genbridge package when executed as a module.

This allows running the package with `python -m genbridge`.
"""

from genbridge.cli import main

if __name__ == '__main__':
    main()
