"""
Package entry point.

Allows running the application via:

    python -m schedcache

This simply forwards execution to schedcache.cli.main().
"""

from schedcache.cli import main

if __name__ == "__main__":
    main()
