"""
Allows running the tool as a module.

Usage:
    python -m netdiag run --format json
"""

from .cli import entrypoint

if __name__ == "__main__":
    entrypoint()
