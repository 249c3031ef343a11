"""Allow ``python -m remote_builder``."""

from remote_builder.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
