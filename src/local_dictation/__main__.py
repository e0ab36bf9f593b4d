"""Allow running as: python -m local_dictation"""

from .cli import cli_main

if __name__ == "__main__":
    cli_main()
