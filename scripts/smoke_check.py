#!/usr/bin/env python
"""Connect to a meter, stream readings for a while and disconnect."""
from __future__ import annotations

import argparse

from gpibmeter import AppSettings, CallbackSink, ConnectError, FailureInfo, MeasurementService
from gpibmeter.log import start_log


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "resource",
        nargs="?",
        default=None,
        help="VISA resource (e.g. GPIB0::1::INSTR) or sim://6485; defaults to the saved setting",
    )
    parser.add_argument("--duration", type=float, default=5.0, help="Seconds to read for")
    parser.add_argument("--verbose", action="store_true", help="Echo the log to stderr")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    start_log(log_to_file=False, log_to_stdout=args.verbose)
    resource = args.resource or AppSettings.load().gpib_resource_name

    def show_error(failure: FailureInfo) -> None:
        print(f"Error ({failure.kind.value}): {failure.message}")

    sink = CallbackSink(on_measurement=lambda text: print(f"Reading: {text}"), on_error=show_error)
    with MeasurementService(resource, sink) as service:
        try:
            service.connect()
        except ConnectError as exc:
            print(exc)
            return 1
        print(f"Connected to {service.identity} via {resource}")
        service.start_for_duration(args.duration)
        service.wait()
        result = service.last_result
        if result is not None:
            print(f"Finished ({result.stop_reason.value}): {result.measurements} readings, {result.failures} failures")
    print("Connection closed")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
