"""Module execution entrypoint (`python -m campaign_keeper`)."""

from __future__ import annotations

from .cli import main


if __name__ == "__main__":
    raise SystemExit(main())
