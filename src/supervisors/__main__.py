"""Allow `python -m supervisors`."""

from supervisors.main import cli

if __name__ == "__main__":
    cli()
