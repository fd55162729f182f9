"""Main entry point for the bibliotech package."""

from bibliotech.cli import main

if __name__ == "__main__":
    main()
