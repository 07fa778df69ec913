"""
TruthForge — Command-Line Entry Point

Runs one comprehensive validation of the current project, prints the
results, saves a JSON report and exits 0 only when the run passed and
the validation token reached disk.

Usage:
    truthforge-validate                    # basic validation
    truthforge-validate --run-tests        # include the project's test suite
    truthforge-validate --comprehensive    # all evidence types (implies --run-tests)
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import structlog
from dotenv import load_dotenv

from truthforge.config import TruthForgeConfig, load_config
from truthforge.errors import PersistenceFailure
from truthforge.systems.validation.service import ValidationService
from truthforge.systems.validation.types import ValidationResult
from truthforge.telemetry.logging import setup_logging

logger = structlog.get_logger()

_RULE = "=" * 50
_SUBRULE = "-" * 30
_MAX_LISTED = 5

_EPILOG = """\
The validation run will:
  1. Capture system state and performance metrics
  2. Run security vulnerability scanning
  3. Inspect the UI and any running UI servers
  4. Execute the test suite (if --run-tests is given)
  5. Compare recorded claims against reality
  6. Save a detailed validation report
  7. Create the validation token if every criterion is met

Only after receiving a validation token can you create checkpoints.
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="truthforge-validate",
        description="TruthForge validation system",
        epilog=_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--run-tests", action="store_true",
        help="Run the project's test suite during validation",
    )
    parser.add_argument(
        "--comprehensive", action="store_true",
        help="Full validation with all evidence types (implies --run-tests)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Show detailed output and errors",
    )
    parser.add_argument(
        "--config", default=None,
        help="Path to a truthforge YAML config (default: $TRUTHFORGE_CONFIG_PATH)",
    )
    return parser


def print_result(result: ValidationResult, config: TruthForgeConfig) -> None:
    print()
    print("VALIDATION RESULTS")
    print(_RULE)
    print(f"Status: {'PASSED' if result.passed else 'FAILED'}")
    print(f"Score: {result.overall_score}% ({result.score:g}/{result.max_score:g})")
    types = ", ".join(result.summary.evidence_types) if result.summary else ""
    print(f"Evidence Types: {types or 'None'}")

    if result.summary is not None:
        s = result.summary
        print()
        print("SUMMARY")
        print(_SUBRULE)
        print(f"Security Status: {s.security_status}")
        print(f"UI Screenshots: {s.ui_screenshots}")
        print(f"Claim Divergences: {s.claim_divergences}")
        print(f"Pending Claims: {s.pending_claims}")
        print(f"Tests Passed: {'Yes' if s.tests_passed else 'No/Not Run'}")

    security = result.evidence.security
    if security is not None:
        print()
        print("SECURITY ANALYSIS")
        print(_SUBRULE)
        print(f"Overall Security Score: {security.overall_score}%")
        print(f"Status: {security.overall_status}")
        print(f"Vulnerabilities Found: {len(security.vulnerabilities)}")
        if security.vulnerabilities:
            print()
            print("VULNERABILITIES:")
            for i, vuln in enumerate(security.vulnerabilities[:_MAX_LISTED], 1):
                print(f"{i}. [{vuln.severity.upper()}] {vuln.description}")
            if len(security.vulnerabilities) > _MAX_LISTED:
                print(f"... and {len(security.vulnerabilities) - _MAX_LISTED} more")

    if result.gate_reasons:
        print()
        print("GATE")
        print(_SUBRULE)
        for reason in result.gate_reasons:
            print(f"- {reason}")

    if result.recommendations:
        print()
        print("RECOMMENDATIONS")
        print(_SUBRULE)
        for i, rec in enumerate(result.recommendations[:_MAX_LISTED], 1):
            print(f"{i}. {rec}")

    print()
    print("VALIDATION TOKEN")
    print(_SUBRULE)
    if result.passed and result.token_persisted:
        print(f"Token created: {result.timestamp.isoformat()}")
        print(f"Token file: {config.paths.resolve(config.paths.token_file)}")
        print("Ready for checkpoint creation")
    elif result.passed:
        print("Validation passed but the token could not be written")
    else:
        print("No validation token (validation failed)")
        print("Cannot create checkpoint until validation passes")

    if result.emergency is not None and result.emergency.fatal:
        print()
        print("EMERGENCY PROTOCOL FAILED: the incident log could not be written.")
        print("The system may be in a critical state. Immediate manual intervention required.")

    if result.error:
        print()
        print(f"Error: {result.error}")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    run_tests = args.run_tests or args.comprehensive

    load_dotenv()
    try:
        config = load_config(args.config)
    except Exception as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1
    setup_logging(config.logging, verbose=args.verbose)

    print("TruthForge Validation System Starting...")
    print(f"Working directory: {config.paths.root}")
    print(f"Options: run_tests={run_tests} comprehensive={args.comprehensive} verbose={args.verbose}")

    try:
        service = ValidationService(config)
        result = asyncio.run(service.perform_comprehensive_validation(run_tests=run_tests))
    except Exception as exc:
        logger.error("validation_system_error", error=str(exc), exc_info=args.verbose)
        print(f"Validation system error: {exc}", file=sys.stderr)
        return 1

    print_result(result, config)

    try:
        report_path = service.artifacts.write_report(result)
    except PersistenceFailure as exc:
        print()
        print(f"Could not save report: {exc}", file=sys.stderr)
        return 1
    print()
    print(f"Detailed report saved: {report_path}")

    ok = result.passed and result.token_persisted
    print()
    print(
        "VALIDATION SUCCESSFUL - Ready for checkpoint!"
        if ok
        else "VALIDATION FAILED - Fix issues before proceeding"
    )
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
