from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from typing import Any, Awaitable, Callable, Sequence

from ..cache import SessionCache
from ..config import KNOWN_BRANDS, load_config
from ..engine import ResolverEngine, build_engine
from ..errors import NotFoundError, ResolverError
from ..logging import get_logger, set_level
from ..paths import expand_abs

LOG = get_logger("cli-main")


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _run_with_engine(job: Callable[[ResolverEngine], Awaitable[Any]], *, with_browser: bool = True) -> int:
    """Start an engine, run ``job`` against it and print the JSON result."""

    async def _runner() -> Any:
        engine = build_engine(load_config(os.getcwd()), with_browser=with_browser)
        await engine.start()
        try:
            return await job(engine)
        finally:
            await engine.shutdown()

    try:
        result = asyncio.run(_runner())
    except NotFoundError as e:
        LOG.error(f"Not found: {e}")
        return 1
    except (ResolverError, ValueError) as e:
        LOG.error(f"Command failed: {e}")
        return 2
    _print_json(result)
    return 0


def _add_serve_cli(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    serve = subparsers.add_parser("serve", help="Run the resolver HTTP API.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8001)
    serve.add_argument("--reload", action="store_true", help="Enable auto-reload (development only)")
    serve.add_argument("--log-level", default="info")
    serve.add_argument(
        "--allow-origin",
        action="append",
        dest="allow_origins",
        help="Allowed CORS origin (can be provided multiple times, use '*' for any).",
    )

    def _serve(ns: argparse.Namespace) -> int:
        from ..api import create_app
        import uvicorn

        app = create_app(config=load_config(os.getcwd()), allow_origins=ns.allow_origins)
        uvicorn.run(app, host=ns.host, port=ns.port, reload=ns.reload, log_level=ns.log_level)
        return 0

    serve.set_defaults(handler=_serve)


def main(argv: Sequence[str] | None = None) -> int:
    provided = list(argv) if argv is not None else sys.argv[1:]
    LOG.info(f"Resolver CLI invoked with arguments: {provided}")

    parser = argparse.ArgumentParser(
        prog="retail-resolver",
        description="Resolve drugstore products by barcode, track prices and store stock, match receipts.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    _add_serve_cli(subparsers)

    lookup_cmd = subparsers.add_parser("lookup", help="Identify a product name and brand by barcode.")
    lookup_cmd.add_argument("code")
    lookup_cmd.set_defaults(
        handler=lambda ns: _run_with_engine(lambda eng: eng.lookup.lookup(ns.code), with_browser=False)
    )

    article_cmd = subparsers.add_parser("article", help="Create or refresh a tracked article.")
    article_cmd.add_argument("ean")
    article_cmd.add_argument("name", nargs="?", default="")
    article_cmd.add_argument(
        "--force",
        choices=["prices", "stores"],
        help="Refresh prices or store availability regardless of staleness (article must exist)",
    )

    def _article(ns: argparse.Namespace) -> int:
        async def _job(eng: ResolverEngine) -> Any:
            if ns.force == "prices":
                return (await eng.articles.force_refresh_prices(ns.ean)).to_dict()
            if ns.force == "stores":
                return (await eng.articles.force_refresh_availability(ns.ean)).to_dict()
            message, article = await eng.articles.upsert_and_refresh(ns.ean, ns.name)
            return {"message": message, "article": article.to_dict()}

        return _run_with_engine(_job)

    article_cmd.set_defaults(handler=_article)

    receipt_cmd = subparsers.add_parser("receipt", help="Match the products on a receipt PDF.")
    receipt_cmd.add_argument("pdf")
    receipt_cmd.add_argument("--brand", required=True, choices=list(KNOWN_BRANDS))

    def _receipt(ns: argparse.Namespace) -> int:
        path = expand_abs(ns.pdf)
        if not os.path.isfile(path):
            LOG.error(f"Receipt not found: {path}")
            return 2
        return _run_with_engine(lambda eng: eng.receipts.match_document(ns.brand, path))

    receipt_cmd.set_defaults(handler=_receipt)

    stores_cmd = subparsers.add_parser("stores", help="Search branches near a postal code or place name.")
    stores_cmd.add_argument("brand", choices=list(KNOWN_BRANDS))
    stores_cmd.add_argument("query")

    def _stores(ns: argparse.Namespace) -> int:
        async def _job(eng: ResolverEngine) -> Any:
            adapter = eng.adapters.get(ns.brand)
            if adapter is None:
                raise ValueError(f"Brand {ns.brand} is not configured")
            return [s.to_payload() for s in await adapter.search_stores(ns.query)]

        return _run_with_engine(_job, with_browser=ns.brand == "mueller")

    stores_cmd.set_defaults(handler=_stores)

    prune_cmd = subparsers.add_parser("cache-prune", help="Drop expired entries from a session cache namespace.")
    prune_cmd.add_argument("namespace")

    def _prune(ns: argparse.Namespace) -> int:
        cache = SessionCache(load_config(os.getcwd()).cache_dir)
        removed = cache.prune(ns.namespace)
        if removed:
            cache.persist(ns.namespace)
        print(removed)
        return 0

    prune_cmd.set_defaults(handler=_prune)

    args = parser.parse_args(provided)
    if args.verbose:
        set_level("DEBUG")
    code = args.handler(args)
    LOG.info(f"Subcommand '{args.command}' finished with exit code {code}.")
    return code


if __name__ == "__main__":
    sys.exit(main())
