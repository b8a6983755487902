from __future__ import annotations

import logging
from dataclasses import dataclass

from libs.core.application.ambient_analyzer import AmbientAnalyzer
from libs.core.application.camera_locator import CameraLocator
from libs.core.application.classifier import ImageClassifier
from libs.core.application.console_service import TankConsole
from libs.core.application.contracts import TelemetryChannel
from libs.core.application.distance_gate import DistanceGate
from libs.core.application.fire_sequencer import FireSequencer
from libs.core.application.frame_capture import CapturePipeline
from libs.core.application.incident_service import IncidentService
from libs.core.application.mode_toggle import ModeToggle
from libs.core.application.movement_emitter import MovementEmitter
from libs.infra.firebase.realtime_channel import FirebaseRealtimeChannel
from libs.infra.onnx.model_loader import load_class_names, onnx_model_loader
from services.tank_console.config import Settings
from services.tank_console.infrastructure.camera_client import HttpFrameFetcher
from services.tank_console.infrastructure.memory_store import InMemoryRealtimeStore
from services.tank_console.infrastructure.stream_runner import StreamPreview

logger = logging.getLogger(__name__)


def build_channel(settings: Settings) -> TelemetryChannel:
    if settings.database_url:
        logger.info("Using Firebase realtime database at %s", settings.database_url)
        return FirebaseRealtimeChannel(
            database_url=settings.database_url,
            auth_token=settings.database_auth_token,
        )
    logger.info("Using in-memory realtime store")
    return InMemoryRealtimeStore()


def build_classifier(settings: Settings) -> ImageClassifier:
    class_names = settings.class_names
    if settings.model_metadata_path is not None:
        try:
            class_names = load_class_names(settings.model_metadata_path)
        except (OSError, ValueError) as error:
            logger.warning("Using default class names: %s", error)
    loader = onnx_model_loader(settings.model_path) if settings.model_path else None
    return ImageClassifier(loader=loader, class_names=class_names)


@dataclass
class ConsoleRuntime:
    """Console service plus the resources it owns."""

    console: TankConsole
    channel: TelemetryChannel
    preview: StreamPreview
    fetcher: HttpFrameFetcher

    async def start(self) -> None:
        if isinstance(self.channel, FirebaseRealtimeChannel):
            await self.channel.connect()
        await self.console.start()
        await self.preview.start()

    async def stop(self) -> None:
        await self.preview.stop()
        await self.console.close()
        await self.fetcher.close()
        if isinstance(self.channel, FirebaseRealtimeChannel):
            await self.channel.close()


def build_runtime(
    settings: Settings,
    channel: TelemetryChannel | None = None,
    fetcher: HttpFrameFetcher | None = None,
    preview: StreamPreview | None = None,
) -> ConsoleRuntime:
    channel = channel if channel is not None else build_channel(settings)
    preview = preview if preview is not None else StreamPreview()
    fetcher = fetcher if fetcher is not None else HttpFrameFetcher()

    gate = DistanceGate(threshold=settings.fire_distance_threshold)
    emitter = MovementEmitter(channel, min_interval_sec=settings.movement_min_interval_sec)
    mode = ModeToggle(channel, emitter)
    camera = CameraLocator(path=settings.camera_ip_path)
    camera.on_change(preview.follow)

    classifier = build_classifier(settings)
    pipeline = CapturePipeline(
        fetcher=fetcher,
        preview=preview,
        classifier=classifier,
        retry_attempts=settings.capture_retry_attempts,
        retry_interval_sec=settings.capture_retry_interval_sec,
        model_ready_timeout_sec=settings.model_ready_timeout_sec,
    )
    incidents = IncidentService(channel)
    fire = FireSequencer(
        channel=channel,
        gate=gate,
        pipeline=pipeline,
        incidents=incidents,
        stream_url=lambda: camera.stream_url,
        cooldown_sec=settings.fire_cooldown_sec,
    )
    analyzer = (
        AmbientAnalyzer(pipeline, stream_url=lambda: camera.stream_url)
        if settings.ambient_analysis
        else None
    )

    console = TankConsole(
        channel=channel,
        gate=gate,
        emitter=emitter,
        mode=mode,
        camera=camera,
        classifier=classifier,
        fire=fire,
        incidents=incidents,
        analyzer=analyzer,
    )
    console.bind()
    return ConsoleRuntime(console=console, channel=channel, preview=preview, fetcher=fetcher)


settings = Settings.from_env()
runtime = build_runtime(settings)


def get_settings() -> Settings:
    return settings


def get_runtime() -> ConsoleRuntime:
    return runtime


def get_console() -> TankConsole:
    return runtime.console


def reset_state(new_settings: Settings | None = None) -> TankConsole:
    """Rebuild the runtime on a fresh in-memory store. Used by tests.

    The old preview stops following its stream. Its fetcher client is left
    for the garbage collector, so call `runtime.stop()` first when it was
    started.
    """
    global settings, runtime
    runtime.console.unbind()
    runtime.preview.follow(None)
    settings = new_settings or Settings()
    runtime = build_runtime(settings, channel=InMemoryRealtimeStore())
    return runtime.console
