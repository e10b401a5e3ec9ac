"""Module entrypoint for `python -m quotaprobe`."""

try:
    from .cli import run
except ImportError:
    # Executed as a plain script outside the package context.
    from quotaprobe.cli import run


if __name__ == "__main__":
    raise SystemExit(run())
