import argparse
import json
import logging
import sys
from typing import List, Optional

from core.config import load_config, parse_hosts, ANALYSIS_PROFILES, RESPONSE_ENCODINGS
from core.engine import Correlator
from core.error_handling import ConfigError, ErrorContext, setup_logging
from core.har import load_archive
from reporting.reporter import Reporter

logger = logging.getLogger("harflect")

STDIN_SOURCE = "<stdin>"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="harflect",
        description="Given a list of .har files, prints request parameter values, "
                    "decoded through JSON and base64 layers. With --match, prints only "
                    "the values reflected in the response body.",
        epilog="Example: harflect --match --hosts 'example.com api.example.com' < capture.har"
    )
    parser.add_argument("files", nargs="*", metavar="HAR_FILE",
                        help="HAR files to dump (default: read one archive from stdin)")
    parser.add_argument("--match", action="store_true",
                        help="Report only values reflected in the response body (reads stdin)")
    parser.add_argument("--hosts", help="Space-delimited list of request hosts to analyze in --match mode")
    parser.add_argument("--output", choices=["text", "json", "table"],
                        help="Output format (default: text for dump, json for --match)")
    parser.add_argument("--include-empty", action="store_true", default=None,
                        help="With --match, also list requests with no reflected values")
    parser.add_argument("--response-encoding", choices=RESPONSE_ENCODINGS,
                        help="base64: decode every response body once (default); "
                             "auto: decode only bodies whose HAR content.encoding is base64")
    parser.add_argument("--max-depth", type=int, help="Maximum nested decoding steps (default: 32)")
    parser.add_argument("--threads", type=int, help="Worker threads for --match (default: 5)")
    parser.add_argument("--no-concurrent", action="store_true", help="Analyze entries sequentially")
    parser.add_argument("--profile", choices=sorted(ANALYSIS_PROFILES), help="Printability profile")
    parser.add_argument("--config", help="JSON config file")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument("--verbose", action="store_true", help="Verbose logging")
    return parser


def run_dump(correlator: Correlator, reporter: Reporter, files: List[str], output: str) -> bool:
    """Dump every source; returns False if any of them failed."""
    ok = True
    for source in files or [STDIN_SOURCE]:
        with ErrorContext(source, logger=logger, log_traceback=correlator.config.verbose) as ctx:
            if source == STDIN_SOURCE:
                entries = load_archive(sys.stdin, source)
            else:
                with open(source, "r", encoding="utf-8") as f:
                    entries = load_archive(f, source)

            items = correlator.iter_dump(entries)
            if output == "json":
                print(json.dumps(
                    [dict(leaf.to_dict(), request=request) for request, leaf in items],
                    indent=2,
                ))
            elif output == "table":
                reporter.render_dump_table(items)
            else:
                reporter.render_dump(items)
        ok = ok and not ctx.failed
    return ok


def run_match(correlator: Correlator, reporter: Reporter, output: str) -> bool:
    with ErrorContext(STDIN_SOURCE, logger=logger, log_traceback=correlator.config.verbose) as ctx:
        entries = load_archive(sys.stdin, STDIN_SOURCE)
        results = correlator.correlate(entries)
        if output == "table":
            reporter.render(results)
        else:
            print(json.dumps(reporter.render_json(results), indent=2))
    return not ctx.failed


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.match and args.files:
        parser.error("--match reads a single archive from standard input; do not pass HAR files")

    try:
        config = load_config(
            profile=args.profile,
            config_file=args.config,
            allowed_hosts=parse_hosts(args.hosts) if args.hosts is not None else None,
            include_empty=args.include_empty,
            response_encoding=args.response_encoding,
            max_depth=args.max_depth,
            max_workers=args.threads,
            enable_concurrent=False if args.no_concurrent else None,
            log_file=args.log_file,
            verbose=args.verbose or None,
        )
    except ConfigError as e:
        setup_logging()
        logger.error(str(e))
        return 1

    setup_logging(
        log_level="DEBUG" if config.verbose else config.log_level,
        log_file=config.log_file,
        verbose=config.verbose,
    )

    if args.hosts and not args.match:
        logger.warning("--hosts only applies to --match mode, ignoring")

    correlator = Correlator(config, match_mode=args.match)
    reporter = Reporter(include_empty=config.include_empty)

    try:
        if args.match:
            ok = run_match(correlator, reporter, args.output or "json")
        else:
            ok = run_dump(correlator, reporter, args.files, args.output or "text")
    except KeyboardInterrupt:
        print(file=sys.stderr)
        logger.warning("Interrupted by user")
        return 130

    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
