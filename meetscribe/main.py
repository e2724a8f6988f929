"""Main application entry point for meetscribe."""

import sys
import argparse
import logging
import threading
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from meetscribe import __version__
from meetscribe.audio.capture import AudioCapture
from meetscribe.browser.playwright_session import PlaywrightBrowserSession
from meetscribe.models.report import SessionReport
from meetscribe.models.session import LifecycleState
from meetscribe.services.controller import LifecycleController
from meetscribe.services.events import EventPublisher
from meetscribe.services.transcript_aggregator import TranscriptAggregator
from meetscribe.storage.base import AbstractArtifactStore, AbstractTranscriptStore
from meetscribe.storage.file_manager import LocalArtifactStore, LocalTranscriptStore
from meetscribe.storage.supabase import SupabaseArtifactStore, SupabaseTranscriptStore
from meetscribe.transcription import GoogleSpeechBackend

from .config import MeetscribeConfig

logger = logging.getLogger(__name__)

console = Console()


class MeetingBot:
    """Wires the controller to its collaborators from configuration."""

    def __init__(self, config_path: str, target: Optional[str] = None, log_level: Optional[str] = None):
        # Load configuration
        self.config = MeetscribeConfig(config_path)
        if target:
            self.config.set('meeting.target', target)
        # Set up logging (override config with command line if specified)
        setup_logging(self.config, log_level or self.config.get('logging.level', 'INFO'))

        self.settings = self.config.get_controller_settings()
        self.controller: Optional[LifecycleController] = None
        self.transcriber: Optional[GoogleSpeechBackend] = None
        self.aggregator: Optional[TranscriptAggregator] = None

    def init(self) -> None:
        logger.info("Initializing services...")
        data_dir = Path(self.config.get_data_directory())

        self.transcriber = GoogleSpeechBackend(
            credentials_path=self.config.get_google_credentials_path(),
            language=self.config.get('google_cloud.language', 'en-US'),
            model=self.config.get('google_cloud.model', 'latest_long'),
            use_enhanced=self.config.get('google_cloud.use_enhanced_model', True),
            enable_automatic_punctuation=self.config.get('google_cloud.enable_automatic_punctuation', True),
            request_timeout=float(self.config.get('google_cloud.request_timeout_s', 30.0)),
        )
        if not self.transcriber.initialize():
            raise RuntimeError("Google Speech backend failed to initialize")

        capture = AudioCapture(
            output_dir=str(data_dir / "tmp" / "audio"),
            device=self.settings.capture_device,
            window_seconds=self.settings.capture_window,
            sample_rate=self.config.get('audio.sample_rate', 16000),
            chunk_size=self.config.get('audio.chunk_size', 1024),
            channels=self.config.get('audio.channels', 1),
        )
        browser = PlaywrightBrowserSession(
            profile_directory=self.settings.browser_profile,
            headless=self.config.get('browser.headless', True),
            join_attempts=self.settings.join_attempts,
            settle_seconds=self.settings.join_settle,
        )
        transcript_store, artifact_store = self._build_stores(data_dir)

        publisher = EventPublisher()
        self.aggregator = TranscriptAggregator(publisher.segment_topic, console=console,
                                               lifecycle_topic=publisher.lifecycle_topic)
        self.controller = LifecycleController(
            settings=self.settings,
            browser=browser,
            capture=capture,
            transcriber=self.transcriber,
            transcript_store=transcript_store,
            artifact_store=artifact_store,
            publisher=publisher,
        )

    def _build_stores(self, data_dir: Path):
        backend = self.config.get('storage.backend', 'local')
        logger.info(f"Storage backend: {backend}")
        if backend == 'local':
            return LocalTranscriptStore(str(data_dir)), LocalArtifactStore(str(data_dir))
        if backend == 'supabase':
            url = self.config.get('storage.supabase.url')
            if not url:
                raise ValueError("storage.supabase.url is required for the supabase backend")
            api_key = self.config.get_secret('storage.supabase.key_env')
            timeout = float(self.config.get('storage.supabase.request_timeout_s', 30.0))
            transcript_store: AbstractTranscriptStore = SupabaseTranscriptStore(
                url, api_key,
                table=self.config.get('storage.supabase.table', 'meeting_transcripts'),
                request_timeout=timeout,
            )
            artifact_store: AbstractArtifactStore = SupabaseArtifactStore(
                url, api_key,
                bucket=self.config.get('storage.supabase.bucket', 'audio'),
            )
            return transcript_store, artifact_store
        raise ValueError(f"Unknown storage backend: {backend}")

    def run(self) -> SessionReport:
        """Run the controller on a worker thread so Ctrl+C can request a stop."""
        result = {}
        worker = threading.Thread(
            target=lambda: result.setdefault("report", self.controller.start()),
            name="LifecycleController",
            daemon=True,
        )
        worker.start()
        try:
            while worker.is_alive():
                worker.join(timeout=0.5)
        except KeyboardInterrupt:
            console.print("\n🛑 Stopping, finishing teardown...", style="yellow")
            self.controller.stop("keyboard interrupt")
            worker.join()
        return result.get("report") or self.controller.report()

    def cleanup(self) -> None:
        if self.aggregator:
            self.aggregator.print_summary()
            self.aggregator.close()
        if self.transcriber:
            self.transcriber.cleanup()


def print_report(report: SessionReport) -> None:
    table = Table(title="📊 Session report", show_header=False)
    table.add_row("Meeting", report.target)
    table.add_row("Session", report.session_id or "-")
    style = "green" if report.final_state is LifecycleState.ENDED else "red"
    table.add_row("Final state", f"[{style}]{report.final_state.value}[/{style}]")
    table.add_row("Stop reason", report.stop_reason or "-")
    table.add_row("Segments attempted", str(report.segments_attempted))
    table.add_row("Transcripts recorded", str(report.total_transcript_count))
    table.add_row("Duration", f"{report.duration_seconds:.0f}s")
    console.print(table)


def list_devices(config: Optional[MeetscribeConfig]) -> None:
    device = config.get('audio.device') if config else None
    devices = AudioCapture(device=device).list_input_devices()
    table = Table(title="🎤 Input devices")
    table.add_column("Index", justify="right")
    table.add_column("Name")
    table.add_column("Channels", justify="right")
    table.add_column("Default rate", justify="right")
    for info in devices:
        table.add_row(str(info["index"]), info["name"], str(info["channels"]),
                      str(info["default_sample_rate"]))
    console.print(table)


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    # Get log file path from config
    log_file_path = config.get('logging.file_path', 'data/logs/meetscribe.log')
    console_output = config.get('logging.console_output', True)

    # Create logs directory if it doesn't exist
    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    # Set up handlers
    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(threadName)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    # Log startup
    logger = logging.getLogger(__name__)
    logger.info("=" * 50)
    logger.info("meetscribe starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def main() -> None:
    """Main entry point for meetscribe."""
    parser = argparse.ArgumentParser(
        description="meetscribe - join a meeting and transcribe it unattended",
    )

    parser.add_argument(
        "--config",
        type=str,
        default="meetscribe.yaml",
        help="Path to configuration YAML file (default: meetscribe.yaml)"
    )

    parser.add_argument(
        "--target",
        type=str,
        help="Meeting URL to join (overrides meeting.target in config)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: logging.level from config, else INFO)"
    )

    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="List audio input devices and exit"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"meetscribe v{__version__}"
    )

    args = parser.parse_args()

    if args.list_devices:
        config = MeetscribeConfig(args.config) if Path(args.config).exists() else None
        list_devices(config)
        return

    try:
        bot = MeetingBot(args.config, target=args.target, log_level=args.log_level)
        bot.init()
    except (ValueError, FileNotFoundError, RuntimeError) as e:
        console.print(f"❌ Error: {e}", style="bold red")
        logging.error(f"Startup error: {e}")
        sys.exit(1)

    try:
        report = bot.run()
    finally:
        bot.cleanup()

    print_report(report)
    sys.exit(0 if report.final_state is LifecycleState.ENDED else 1)


if __name__ == "__main__":
    main()
