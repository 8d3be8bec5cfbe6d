#!/usr/bin/env python3
"""
recap command line entry point.

    recap                       Start taking screenshots and summarizing batches
    recap --analyze <path>      Analyze an existing image and exit
    recap --help                Show this help

While running, `kill -USR1 <pid>` writes a summary grid of the open batch
and `kill -USR2 <pid>` runs the full analysis on it. The pid is in
`recap.pid` in the config directory.
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from .batch_store import BatchStore
from .config_manager import AppSettings, get_config_manager
from .errors import ConfigError, InstanceLocked, PersistenceFailure
from .grid_composer import GridComposer, GridLayout
from .instance_lock import InstanceLock
from .notifier import Notifier
from .observers.screen import Screen
from .pipeline import BatchPipeline
from .prompts.analysis import ANALYSIS_PROMPT, IMAGE_PROMPT
from .scheduler import BatchScheduler
from .services import ImageClient, VisionClient, WebhookClient
from .storage import BatchStorage

logger = logging.getLogger(__name__)


def configure_logging(debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='%(asctime)s | %(message)s',
        datefmt='%H:%M:%S',
        handlers=[logging.StreamHandler()],
    )


def load_prompt(path: Optional[str], default: str) -> str:
    """Read a prompt override from ``path``, falling back to ``default``."""
    if not path:
        return default
    try:
        return Path(path).expanduser().read_text(encoding="utf-8").strip() or default
    except OSError as e:
        logger.error(f"Error reading prompt file {path}: {e}; using built-in prompt")
        return default


def build_pipeline(settings: AppSettings, storage: BatchStorage, notifier: Notifier) -> BatchPipeline:
    layout = GridLayout(
        rows=settings.grid_rows,
        cols=settings.grid_cols,
        padding=settings.padding,
        label_height=settings.label_height,
        title_height=settings.title_height,
        font_size=settings.font_size,
        compressed_scale=settings.compressed_scale,
        compressed_quality=settings.compressed_quality,
    )
    return BatchPipeline(
        composer=GridComposer(layout, storage),
        vision=VisionClient(settings.openrouter_api_key, model=settings.vision_model, timeout=settings.stage_timeout),
        images=ImageClient(settings.openai_api_key, model=settings.image_model, size=settings.image_size),
        webhook=WebhookClient(settings.webhook_url, timeout=settings.stage_timeout),
        storage=storage,
        notifier=notifier,
        analysis_prompt=load_prompt(settings.analysis_prompt_file, ANALYSIS_PROMPT),
        image_prompt=load_prompt(settings.image_prompt_file, IMAGE_PROMPT),
        stage_timeout=settings.stage_timeout,
    )


def build_scheduler(settings: AppSettings, screen: Optional[Screen] = None) -> BatchScheduler:
    notifier = Notifier(enabled=settings.notifications)
    storage = BatchStorage(settings.screenshots_dir)
    storage.ensure_base_dir()
    return BatchScheduler(
        store=BatchStore(persist=storage.save_capture),
        screen=screen or Screen(),
        pipeline=build_pipeline(settings, storage, notifier),
        capture_interval=settings.capture_interval,
        batch_interval=settings.batch_interval,
        notifier=notifier,
        capture_timeout=settings.stage_timeout,
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="recap",
        description="Screenshot batching and AI analysis tool",
    )
    parser.add_argument("--analyze", metavar="PATH", help="Path to an image file to analyze, then exit")
    parser.add_argument("--config-dir", help="Configuration directory (default: ~/.config/recap)")
    parser.add_argument("--capture-interval", help="Time between screenshots, e.g. 60 or 1m")
    parser.add_argument("--batch-interval", help="Time between batch summaries, e.g. 30m")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


async def analyze_existing_image(settings: AppSettings, image_path: str) -> int:
    notifier = Notifier(enabled=settings.notifications)
    storage = BatchStorage(settings.screenshots_dir)
    pipeline = build_pipeline(settings, storage, notifier)
    try:
        report = await pipeline.process_image_file(image_path)
    except (FileNotFoundError, ValueError, PersistenceFailure) as e:
        logger.error(f"Error: {e}")
        notifier.notify("Error", str(e))
        return 1
    return 0 if report.analysis_path is not None else 1


def install_action_signals(scheduler: BatchScheduler, loop: asyncio.AbstractEventLoop) -> List[int]:
    """Map SIGUSR1 to a summary and SIGUSR2 to an analysis of the open batch.

    Returns the signals that were installed; none on platforms without them.
    """
    installed = []
    for name, action in (('SIGUSR1', scheduler.request_summary), ('SIGUSR2', scheduler.request_analysis)):
        sig = getattr(signal, name, None)
        if sig is None:
            continue
        try:
            loop.add_signal_handler(sig, action)
        except (NotImplementedError, RuntimeError) as e:
            logger.warning(f"Cannot install {name} handler: {e}")
            continue
        installed.append(sig)
    return installed


async def run_scheduler(settings: AppSettings) -> None:
    scheduler = build_scheduler(settings)
    scheduler.screen.log_display_info()
    loop = asyncio.get_running_loop()
    installed = install_action_signals(scheduler, loop)
    try:
        await scheduler.run_forever()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.debug)

    config = get_config_manager(args.config_dir)
    try:
        settings = config.load_settings(
            capture_interval=args.capture_interval,
            batch_interval=args.batch_interval,
            debug=args.debug or None,
        )
    except ConfigError as e:
        logger.error(str(e))
        return 1

    if args.analyze:
        return asyncio.run(analyze_existing_image(settings, args.analyze))

    missing = config.get_missing_config()
    if missing:
        logger.warning(f"Missing configuration: {', '.join(missing)}. Run setup_wizard.py to add it.")

    lock = InstanceLock(config.config_dir / "recap.pid")
    try:
        lock.acquire()
    except InstanceLocked as e:
        logger.error(str(e))
        return 1

    try:
        asyncio.run(run_scheduler(settings))
    except KeyboardInterrupt:
        logger.info("Stopping recap")
    finally:
        lock.release()
    return 0


if __name__ == "__main__":
    sys.exit(main())
