"""
Entry point for running the supervisor via `python -m toplevel`.
"""

from .main import main

if __name__ == "__main__":
    main()
