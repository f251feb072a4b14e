"""Exceptions raised by the blogwatch daemon."""


class BlogwatchError(Exception):
    """Base class for blogwatch errors."""


class StartupError(BlogwatchError):
    """A fatal condition detected before the watch loop starts."""


class WatchError(StartupError):
    """The filesystem watch on the source directory could not be established."""


class PublishError(BlogwatchError):
    """The document set could not be published."""
