"""Entry point: offline cache proxy, area prefetch and cache maintenance."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from aiohttp import web
from pydantic import ValidationError

from domain.config import CacheSettings, load_settings
from domain.models import PrefetchCommand
from infrastructure.http.client import HttpFetcher, make_http_session
from infrastructure.http.proxy import create_app
from services.commands import CommandDispatcher
from services.lifecycle import activate, install
from services.prefetch import AreaPrefetchJob
from services.router import CacheRouter
from shared.errors import PrefetchError
from shared.progress import ConsoleProgress, ProgressChannel
from shared.tasks import BackgroundTasks
from tiles.cache import TierStore

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> Path:
    """Log to stdout and to <LOCALAPPDATA>/OfflineMapCache/log/offline_cache.log.

    Returns:
        Path of the log file.
    """
    local_base = Path(os.getenv('LOCALAPPDATA') or Path.home() / '.offline_map_cache')
    if local_base.name != 'OfflineMapCache':
        local_base = local_base / 'OfflineMapCache'
    log_dir = local_base / 'log'
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / 'offline_cache.log'

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(str(log_file), encoding='utf-8'),
        ],
    )
    # aiohttp.access пишет строку на каждый тайл
    logging.getLogger('aiohttp.access').setLevel(logging.WARNING)
    return log_file


def open_store(settings: CacheSettings) -> TierStore:
    cache_dir = settings.resolved_cache_dir()
    logger.info('Cache directory: %s', cache_dir)
    return TierStore(cache_dir)


async def run_serve(settings: CacheSettings, host: str, port: int) -> None:
    channel = ProgressChannel()
    tasks = BackgroundTasks()
    with open_store(settings) as store:
        async with make_http_session() as session:
            fetcher = HttpFetcher(session, timeout_s=settings.http_timeout_s)
            await install(fetcher, store, settings)
            activate(store, settings)
            router = CacheRouter(fetcher, store, settings, tasks=tasks)
            dispatcher = CommandDispatcher(fetcher, store, settings, channel, tasks)
            runner = web.AppRunner(create_app(router, dispatcher, channel))
            await runner.setup()
            site = web.TCPSite(runner, host, port)
            await site.start()
            logger.info('Offline cache proxy listening on http://%s:%d/', host, port)
            try:
                await asyncio.Event().wait()
            finally:
                await runner.cleanup()
                await tasks.cancel_all()
                channel.close()


async def run_prefetch(settings: CacheSettings, command: PrefetchCommand) -> int:
    channel = ProgressChannel()
    channel.add_listener(ConsoleProgress(label=command.area_name))
    with open_store(settings) as store:
        async with make_http_session() as session:
            fetcher = HttpFetcher(session, timeout_s=settings.http_timeout_s)
            job = AreaPrefetchJob(command, fetcher, store, channel, settings)
            try:
                result = await job.run()
            except PrefetchError as e:
                logger.error('Prefetch failed: %s', e)
                return 1
    return 0 if result.failed == 0 else 2


async def run_install(settings: CacheSettings) -> int:
    with open_store(settings) as store:
        async with make_http_session() as session:
            fetcher = HttpFetcher(session, timeout_s=settings.http_timeout_s)
            report = await install(fetcher, store, settings)
    return 0 if report.page_cached else 1


def run_stats(settings: CacheSettings) -> int:
    with open_store(settings) as store:
        for stats in store.get_stats():
            print(f'{stats.name:<24} {stats.entries:>8} entries {stats.size_bytes / 1024:>10.1f} KiB')
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Offline-first cache for the delivery map (tiles, styles, pages)'
    )
    parser.add_argument('--config', type=Path, default=None, help='TOML settings file')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    sub = parser.add_subparsers(dest='command', required=True)

    serve = sub.add_parser('serve', help='Run the caching proxy')
    serve.add_argument('--host', default=None)
    serve.add_argument('--port', type=int, default=None)

    prefetch = sub.add_parser('prefetch', help='Download an area for offline use')
    prefetch.add_argument('area_name')
    prefetch.add_argument(
        '--bbox',
        type=float,
        nargs=4,
        required=True,
        metavar=('WEST', 'SOUTH', 'EAST', 'NORTH'),
    )
    prefetch.add_argument('--min-zoom', type=int, required=True)
    prefetch.add_argument('--max-zoom', type=int, required=True)
    prefetch.add_argument('--style', required=True, help='mapbox://styles/... or https URL')
    prefetch.add_argument(
        '--token',
        default=os.getenv('MAPBOX_ACCESS_TOKEN'),
        help='Access token (default: $MAPBOX_ACCESS_TOKEN)',
    )

    sub.add_parser('install', help='Warm static assets and the app page')
    sub.add_parser('activate', help='Delete cache tiers of older versions')
    sub.add_parser('stats', help='Show entry counts per cache tier')
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    log_file = setup_logging(args.verbose)
    logger.info('Log file: %s', log_file)

    try:
        settings = load_settings(args.config)
    except (FileNotFoundError, ValueError) as e:
        logger.error('Cannot load settings: %s', e)
        return 1

    try:
        if args.command == 'serve':
            asyncio.run(
                run_serve(
                    settings,
                    args.host or settings.proxy_host,
                    args.port or settings.proxy_port,
                )
            )
            return 0
        if args.command == 'prefetch':
            try:
                command = PrefetchCommand(
                    area_name=args.area_name,
                    bbox=tuple(args.bbox),
                    min_zoom=args.min_zoom,
                    max_zoom=args.max_zoom,
                    style_url=args.style,
                    access_token=args.token,
                )
            except ValidationError as e:
                logger.error('Invalid prefetch arguments: %s', e)
                return 1
            return asyncio.run(run_prefetch(settings, command))
        if args.command == 'install':
            return asyncio.run(run_install(settings))
        if args.command == 'activate':
            with open_store(settings) as store:
                removed = activate(store, settings)
            logger.info('Removed %d old tier(s)', len(removed))
            return 0
        if args.command == 'stats':
            return run_stats(settings)
    except KeyboardInterrupt:
        logger.info('Interrupted')
        return 130
    return 1


if __name__ == '__main__':
    sys.exit(main())
