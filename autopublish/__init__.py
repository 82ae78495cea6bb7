"""autopublish - single-instance runner for the scheduled publishing job.

Wraps the publisher in a directory lock so overlapping cron invocations are
dropped instead of running concurrently.
"""

__version__ = "0.1.0"
