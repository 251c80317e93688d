"""fedbridge: bridge a web site to the fediverse through webmentions.

Exported Functions:
    main: Entry point for the fedbridge console command
"""
from .fedbridge import main

__all__ = ["main"]
