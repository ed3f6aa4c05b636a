"""Main entry point for the readingtracker package."""

from readingtracker.cli import app


def main():
    """Run the readingtracker command-line interface."""
    app()


if __name__ == "__main__":
    main()
