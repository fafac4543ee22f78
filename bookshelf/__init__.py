"""HTTP service for keeping each user's books, with an in-process message broker."""

__version__ = "1.1.3"