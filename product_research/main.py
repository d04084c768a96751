import argparse
import json
from pathlib import Path
from product_research.config.settings import Settings, MODES
from product_research.exceptions import ConfigurationError
from product_research.orchestrator import Orchestrator
from product_research.providers.firecrawl import FirecrawlClient
from product_research.quality.readiness import summarize_readiness
import logging, sys
import structlog

EXIT_CODES = {"done": 0, "needs_review": 1, "failed": 2}


def _init_logging(level: str = "INFO", json_logs: bool = False):
    level = level.upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[structlog.processors.add_log_level, structlog.processors.TimeStamper(fmt="iso"), renderer],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level, logging.INFO)),
        # stdout carries the JSON result
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def _read_queries(path: str):
    lines = Path(path).read_text(encoding="utf-8").splitlines()
    return [line.strip() for line in lines if line.strip() and not line.startswith("#")]


def main(argv=None):
    settings = Settings()
    p = argparse.ArgumentParser(prog="product-research", description="Iterative product research")
    src = p.add_mutually_exclusive_group(required=True)
    src.add_argument("--query", help="Supplier title to research, e.g. \"HP W1331X\"")
    src.add_argument("--queries-file", help="File with one query per line; prints a readiness summary")
    p.add_argument("--mode", choices=sorted(MODES), default=settings.DEFAULT_MODE)
    p.add_argument("--locale", default=settings.DEFAULT_LOCALE)
    p.add_argument("--no-strict", action="store_true", help="Accept compatibility evidence from any domain")
    p.add_argument("--parallel", action="store_true", help="Dispatch categories concurrently when the provider allows it")
    p.add_argument("--output", help="Write JSON result here instead of stdout")
    p.add_argument("--log-json", action="store_true", default=settings.LOG_JSON)
    args = p.parse_args(argv)

    _init_logging(settings.LOG_LEVEL, args.log_json)
    log = structlog.get_logger("product_research")

    try:
        client = FirecrawlClient.from_settings(settings)
    except ConfigurationError as e:
        sys.stderr.write(f"Configuration error: {e}\n")
        return 2

    queries = [args.query] if args.query else _read_queries(args.queries_file)
    strict = not args.no_strict
    results = []
    with client:
        orchestrator = Orchestrator(client, client, settings=settings, parallel_categories=args.parallel)
        for query in queries:
            try:
                result = orchestrator.run(query, mode=args.mode, locale=args.locale, strict_sources=strict)
            except KeyboardInterrupt:
                sys.stderr.write("\nInterrupted by user.\n")
                return 1
            log.info(
                "run_complete",
                query=query,
                status=result.status,
                warnings=result.record.meta.warnings,
                calls=result.record.meta.stats.calls_made,
                publish_ready=result.record.publish_ready,
            )
            results.append(result)

    if args.query:
        payload = results[0].model_dump(mode="json")
    else:
        payload = {
            "results": [r.model_dump(mode="json") for r in results],
            "summary": summarize_readiness([r.record for r in results]).model_dump(mode="json"),
        }
    text = json.dumps(payload, ensure_ascii=False, indent=2)
    if args.output:
        Path(args.output).write_text(text, encoding="utf-8")
        print(f"Result written to {args.output}", file=sys.stderr)
    else:
        print(text)

    # Worst status across the batch decides the exit code
    return max(EXIT_CODES[r.status] for r in results) if results else 1


if __name__ == "__main__":
    sys.exit(main())
