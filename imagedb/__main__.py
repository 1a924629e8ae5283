"""Main entry point for running imagedb as a module."""

from .cli import main

if __name__ == "__main__":
    main()
