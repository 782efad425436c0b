from __future__ import annotations

import argparse
import json
import time
from pathlib import Path
from typing import List

from . import __version__
from .config import Settings, load_settings
from .fetch import FetchError
from .log import LogConfig, get_logger, setup_logging
from .merge import merge_unique
from .parse_netscape import parse_bookmarks_html, read_bookmarks_file
from .sites import InputError, SiteService, clean_sites, filter_sites
from .store import StoreError, load_sites, open_store

log = get_logger(__name__)


def main(argv: List[str] | None = None) -> int:
    p = argparse.ArgumentParser(
        prog="navmarks",
        description="Personal navigation page: import browser bookmarks and manage sites by category.",
    )
    p.add_argument("-V", "--version", action="version", version=f"navmarks {__version__}")
    p.add_argument("--config", default=None, help="YAML config file (optional). Env vars override defaults.")
    p.add_argument("--log-level", default=None, help="DEBUG/INFO/WARN/ERROR (overrides env/config).")
    p.add_argument("--no-color", action="store_true", help="Disable colored logging.")
    p.add_argument("--store", default=None, help="SQLite store path (overrides NAV_STORE_PATH).")
    sub = p.add_subparsers(dest="cmd", required=True)

    imp = sub.add_parser("import", help="Import a browser bookmarks HTML export.")
    src = imp.add_mutually_exclusive_group(required=True)
    src.add_argument("--html", help="Bookmarks HTML export file (Netscape format).")
    src.add_argument("--url", help="Fetch the bookmarks HTML from this URL.")
    imp.add_argument("--dry-run", action="store_true", help="Report what would be imported without writing.")

    ls = sub.add_parser("list", help="List stored sites.")
    ls.add_argument("--category", default=None, help="Only this category ('未分类' for uncategorized).")
    ls.add_argument("--search", default="", help="Case-insensitive match on name, URL or category.")
    ls.add_argument("--sort", choices=["recent", "name"], default="recent")
    ls.add_argument("--json", action="store_true", help="Print JSON instead of a table.")

    add = sub.add_parser("add", help="Add a site.")
    add.add_argument("--name", required=True)
    add.add_argument("--url", required=True)
    add.add_argument("--category", default="")

    rm = sub.add_parser("delete", help="Delete sites by id.")
    rm.add_argument("ids", nargs="+")

    sub.add_parser("categories", help="List categories.")

    srv = sub.add_parser("serve", help="Run the HTTP API.")
    srv.add_argument("--host", default=None)
    srv.add_argument("--port", type=int, default=None)

    args = p.parse_args(argv)
    cfg = load_settings(args.config)
    if args.log_level:
        cfg.log_level = args.log_level
    if args.no_color:
        cfg.no_color = True
    if args.store:
        cfg.store_backend = "sqlite"
        cfg.store_path = args.store
    setup_logging(LogConfig(level=cfg.log_level, no_color=cfg.no_color))

    try:
        if args.cmd == "import":
            return _cmd_import(args, cfg)
        if args.cmd == "list":
            return _cmd_list(args, cfg)
        if args.cmd == "add":
            return _cmd_add(args, cfg)
        if args.cmd == "delete":
            return _cmd_delete(args, cfg)
        if args.cmd == "categories":
            return _cmd_categories(cfg)
        if args.cmd == "serve":
            return _cmd_serve(args, cfg)
    except ValueError as e:
        # InputError, and bad settings such as an unknown store backend.
        log.error("%s", e)
        return 2
    except (StoreError, FetchError) as e:
        log.error("%s", e)
        return 1
    return 2


def _cmd_import(args, cfg: Settings) -> int:
    t0 = time.time()
    service = SiteService(open_store(cfg), cfg)

    if args.html:
        path = Path(args.html)
        if not path.exists():
            log.error("Input file not found: %s", path)
            return 2
        try:
            html = read_bookmarks_file(path)
        except OSError as e:
            log.error("Cannot read bookmarks file %s: %s", path, e)
            return 2
        if args.dry_run:
            return _dry_run(service, html)
        result = service.import_html(html)
    else:
        if args.dry_run:
            log.error("--dry-run is only supported with --html.")
            return 2
        result = service.import_url(args.url)

    print(f"imported={result.imported_count} skipped={result.skipped_count} total={len(result.merged)}")
    log.info("Done in %d ms.", int((time.time() - t0) * 1000))
    return 0


def _dry_run(service: SiteService, html: str) -> int:
    if not html.strip():
        raise InputError("No HTML content provided")
    entries = parse_bookmarks_html(html)
    result = merge_unique(load_sites(service.store, service.key), entries)
    print(f"would import={result.imported_count} skipped={result.skipped_count}")
    log.info("Dry-run: store not written.")
    return 0


def _cmd_list(args, cfg: Settings) -> int:
    service = SiteService(open_store(cfg), cfg)
    sites = filter_sites(
        clean_sites(service.list_sites()),
        category=args.category,
        keyword=args.search,
        sort=args.sort,
    )
    if args.json:
        print(json.dumps([s.to_dict() for s in sites], ensure_ascii=False, indent=2))
        return 0
    for s in sites:
        print(f"{s.id}\t{s.category or '-'}\t{s.name}\t{s.url}")
    return 0


def _cmd_add(args, cfg: Settings) -> int:
    service = SiteService(open_store(cfg), cfg)
    site = service.add_site({"name": args.name, "url": args.url, "category": args.category})
    print(site.id)
    return 0


def _cmd_delete(args, cfg: Settings) -> int:
    service = SiteService(open_store(cfg), cfg)
    removed = service.delete_sites(args.ids)
    print(f"deleted={removed}")
    return 0


def _cmd_categories(cfg: Settings) -> int:
    service = SiteService(open_store(cfg), cfg)
    for name in service.catalog()["categories"]:
        print(name)
    return 0


def _cmd_serve(args, cfg: Settings) -> int:
    from .api import create_app

    host = args.host or cfg.host
    port = args.port or cfg.port
    app = create_app(cfg)
    log.info("Serving navmarks API on http://%s:%d", host, port)
    app.run(host=host, port=port)
    return 0
