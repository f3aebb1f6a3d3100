"""
Module entry point for: python -m examxml

Allows running the converter directly as a module:
    python -m examxml build <exam_json> [options]
    python -m examxml convert <exam_json> --mastering-url <url>
    python -m examxml serve [options]
"""

from .cli import cli


def main():
    cli()


if __name__ == "__main__":
    main()
