"""Run the supervisor service."""

from toplevel.main import main

if __name__ == "__main__":
    main()
