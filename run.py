"""Command-line entry point for the outcome pipeline."""

from __future__ import annotations

import argparse
import json
import logging
import sys

from outcomegen.config import PipelineConfig
from outcomegen.errors import PipelineError
from outcomegen.pipeline import OutcomePipeline
from outcomegen.types import Job, ProgressReport


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(description="Execute one outcome job.")
    parser.add_argument("job_path", help="Path to a job document (JSON).")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level for pipeline output.",
    )
    return parser.parse_args(argv)


def _print_progress(report: ProgressReport) -> None:
    print(f"[{report.percentage:3d}%] {report.current_step}: {report.message}", file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    """Entry point used by ``python run.py``."""
    args = parse_args(argv if argv is not None else sys.argv[1:])
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    with open(args.job_path, "r", encoding="utf-8") as handle:
        document = json.load(handle)
    try:
        job = Job.from_dict(document)
    except PipelineError as exc:
        print(json.dumps({"status": "failed", "error": exc.to_job_error()}, indent=2))
        return 1

    pipeline = OutcomePipeline(PipelineConfig.from_env())
    result = pipeline.execute(job, report_progress=_print_progress)
    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    return 0 if result.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
