"""Main application entry point for PrepCoach."""

import sys
import signal
import asyncio
import argparse
import logging
from pathlib import Path
from typing import Optional

from prepcoach import __version__
from prepcoach.services.capture_session import CaptureSession
from prepcoach.services.publisher import SessionPublisher
from prepcoach.transcription.analysis_client import RemoteAnalysisClient
from prepcoach.ui.session_screen import SessionScreen

from .config import PrepCoachConfig

logger = logging.getLogger(__name__)


class Server:

    def __init__(self, config_path: Optional[str], log_level: Optional[str] = None):
        # Load configuration
        self.config = PrepCoachConfig(config_path)
        # Set up logging (command line overrides config)
        setup_logging(self.config, log_level or self.config.get('logging.level', 'INFO'))
        self.stop_requested: Optional[asyncio.Event] = None

    def init(self) -> None:
        logger.info("Initializing services...")

        endpoint = self.config.get('analysis.endpoint')
        logger.info(f"Audio settings: {self.config.get('audio.sample_rate')}Hz, "
                    f"{self.config.get('audio.chunk_interval_ms')}ms chunks, "
                    f"silence <= {self.config.get('processing.silence_threshold')} "
                    f"for {self.config.get('processing.silence_duration_ms')}ms")
        logger.info(f"Analysis endpoint: {endpoint}")

        self.client = RemoteAnalysisClient(
            endpoint=endpoint,
            timeout_seconds=self.config.get('analysis.timeout_seconds', 30.0),
            resume_id=self.config.get('analysis.resume_id'),
            job_id=self.config.get('analysis.job_id'),
        )
        self.publisher = SessionPublisher()
        self.session = CaptureSession(self.config, self.client, self.publisher)
        self.screen = SessionScreen()

    async def run(self, duration: Optional[int]) -> int:
        self.stop_requested = asyncio.Event()
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, self.request_stop)
        except NotImplementedError:
            logger.debug("Signal handlers unavailable, Ctrl+C ends without a final flush")

        self.screen.start()
        try:
            result = await self.session.start()
            if not result["success"]:
                return 1

            try:
                await asyncio.wait_for(self.stop_requested.wait(), timeout=duration)
            except asyncio.TimeoutError:
                logger.info(f"Recording duration of {duration}s elapsed")

            summary = await self.session.stop()
            logger.info(f"Session finished: {summary}")
            state = self.session.get_state()
            if state.transcription:
                self.screen.console.print(f"[bold]Transcript:[/bold] {state.transcription}")
            if state.response:
                self.screen.console.print(f"[bold]Suggested answer:[/bold] {state.response}")
            return 0
        finally:
            await self.session.close()
            self.screen.stop()
            if sys.platform != "win32":
                loop.remove_signal_handler(signal.SIGINT)

    def request_stop(self) -> None:
        if self.stop_requested is not None:
            self.stop_requested.set()


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/prepcoach.log')
    console_output = config.get('logging.console_output', True)

    # Create logs directory if it doesn't exist
    Path(log_file_path).parent.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    ))
    handlers.append(file_handler)

    # Console handler - warnings and above, and only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("PrepCoach application starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def main() -> None:
    """Main entry point for PrepCoach application."""
    parser = argparse.ArgumentParser(
        description="PrepCoach - Live interview transcription and coaching",
        epilog="Press Ctrl+C to stop listening"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: looks for prepcoach.yaml)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (overrides config)"
    )

    parser.add_argument(
        "--duration",
        type=int,
        help="Stop listening after this many seconds (default: until Ctrl+C)"
    )

    parser.add_argument(
        "--endpoint",
        type=str,
        help="Analysis endpoint URL (overrides config)"
    )

    parser.add_argument(
        "--resume-id",
        type=str,
        help="Resume document id sent with coaching requests"
    )

    parser.add_argument(
        "--job-id",
        type=str,
        help="Job description document id sent with coaching requests"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"PrepCoach v{__version__}"
    )

    args = parser.parse_args()

    try:
        server = Server(args.config, args.log_level)
    except (FileNotFoundError, ValueError) as e:
        print(f"❌ Configuration error: {e}")
        sys.exit(2)

    if args.endpoint:
        server.config.set('analysis.endpoint', args.endpoint)
    if args.resume_id:
        server.config.set('analysis.resume_id', args.resume_id)
    if args.job_id:
        server.config.set('analysis.job_id', args.job_id)

    try:
        server.init()
        exit_code = asyncio.run(server.run(args.duration))
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
        exit_code = 0
    except Exception as e:
        print(f"❌ Error: {e}")
        logging.error(f"Application error: {e}", exc_info=True)
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
