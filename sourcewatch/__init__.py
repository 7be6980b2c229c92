"""sourcewatch - monitor feeds and news pages for relevant articles."""

__version__ = "0.1.0"
