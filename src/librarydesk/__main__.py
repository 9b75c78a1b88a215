"""Main entry point for the librarydesk package."""

from librarydesk.cli import main


if __name__ == "__main__":
    main()
