#!/usr/bin/env python3
"""
scan_domain.py

Runs the full domain security scan from a shell and prints each scanner's
result as it completes.

Usage:
    # Human-readable progress and summary:
    python scan_domain.py example.com

    # Re-run a single scanner:
    python scan_domain.py example.com --only emailAuth

    # Print the exported aggregate as JSON instead:
    python scan_domain.py example.com --json

Run from backend/ (where domainscan/ lives).
"""

import argparse
import json
import logging
import os
import sys

# Ensure the package is importable
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from domainscan.scanner import (
    ScanEngine,
    ScannerCache,
    ScannerNotFoundError,
    build_default_registry,
    interpret_scanner_result,
    validate_domain,
)

SEVERITY_MARKS = {
    "success": "OK  ",
    "info": "INFO",
    "warning": "WARN",
    "critical": "CRIT",
    "error": "ERR ",
}


def _print_result(result):
    interp = interpret_scanner_result(result)
    print(f"[{SEVERITY_MARKS.get(interp.severity, '    ')}] {result.label:<24} {interp.message}")
    for issue in result.issues:
        print(f"         - {issue}")


def _on_progress(results):
    latest = results[-1]
    if latest.status.value == "running":
        print(f"  ... {latest.label}", flush=True)
    else:
        _print_result(latest)


def create_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scan_domain",
        description="Run the domain security scan from a shell",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scan_domain.py example.com
  python scan_domain.py example.com --only emailAuth
  python scan_domain.py example.com --json
        """,
    )
    parser.add_argument("domain", help="Domain or URL to scan")
    parser.add_argument(
        "--only",
        metavar="SCANNER_ID",
        help="Run a single scanner (e.g. dns, emailAuth, tls)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="as_json",
        help="Print the exported result as JSON",
    )
    return parser


def main(argv=None):
    args = create_argument_parser().parse_args(argv)
    as_json = args.as_json
    only = args.only

    check = validate_domain(args.domain)
    if not check.is_valid:
        print(f"Invalid domain: {check.error}")
        return 2
    domain = check.normalized_domain

    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    engine = ScanEngine(build_default_registry(), cache=ScannerCache())

    if only:
        try:
            result = engine.run_one_sync(domain, only)
        except ScannerNotFoundError as e:
            print(str(e))
            print(f"Available: {', '.join(engine.registry.ids())}")
            return 2
        if as_json:
            print(json.dumps(result.to_dict(), indent=2))
        else:
            _print_result(result)
        return 0 if not result.error else 1

    if as_json:
        aggregate = engine.run_all_sync(domain)
        print(json.dumps(aggregate.to_dict(), indent=2))
        return 0

    print(f"Scanning {domain}\n")
    aggregate = engine.run_all_sync(domain, on_progress=_on_progress)

    failed = [s for s in aggregate.scanners if s.error]
    print(f"\n{'=' * 60}")
    print(f"Total: {len(aggregate.issues)} issue(s) across {len(aggregate.scanners)} scanners")
    if failed:
        print(f"       {len(failed)} scanner(s) failed: {', '.join(s.label for s in failed)}")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
