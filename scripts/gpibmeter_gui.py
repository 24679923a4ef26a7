#!/usr/bin/env python
"""Launch the GPIB current measurement GUI."""

from gpibmeter.app import run_gui


if __name__ == "__main__":
    raise SystemExit(run_gui())
