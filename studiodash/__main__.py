# studiodash/__main__.py
"""
Entry point for ``python -m studiodash <command>``.
"""

from .cli import run

if __name__ == "__main__":
    run()
