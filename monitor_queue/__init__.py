"""
Recurring monitor jobs on a Redis-backed queue, served by a worker pool that
is resized after every submission to keep jobs per worker near capacity.
"""

__version__ = "0.1.0"
