"""blogwatch: publish a Markdown directory and keep webmentions flowing.

The package provides the daemon entry point and its process supervision.
Rebuilding, delivery and receiving live in the publish, indieweb and
receiver packages.

Exported Functions:
    main: Entry point for the blogwatch console command
"""
from .blogwatch import main

__all__ = ["main"]
