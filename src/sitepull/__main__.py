"""
sitepull CLI entry point.

Usage:
    python -m sitepull download --url https://example.com --key k3y
    python -m sitepull serve --root ./site --database site.db --key k3y
"""

from sitepull.cli import main

if __name__ == "__main__":
    main()
