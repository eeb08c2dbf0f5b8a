"""
toplevel - supervisor for a frontend/backend service pair.

Launches both services as child processes, respawns them whenever they exit,
and aborts the whole tree when a service is caught in a crash loop.
"""

__version__ = "0.1.0"
