"""
vSphere Exporter HTTP Server

Serves the Prometheus text exposition of one poll per scrape request.

Author: uldyssian-sh
License: MIT
"""

import asyncio
import signal
import time
from collections import OrderedDict
from typing import Iterable, Iterator, Optional, Sequence

import structlog
from aiohttp import web
from prometheus_client import CollectorRegistry, CONTENT_TYPE_LATEST, generate_latest
from prometheus_client.core import GaugeMetricFamily, Metric

from .collector import AVAILABILITY_HELP, AVAILABILITY_METRIC, VSphereCollector
from .config import ExporterConfig
from .registry import MetricRegistry, Sample

logger = structlog.get_logger(__name__)


NAMESPACE = "vsphere"
UP_METRIC = f"{NAMESPACE}_up"
SCRAPE_DURATION_METRIC = f"{NAMESPACE}_scrape_duration_seconds"

INDEX_PAGE = """<html>
<head><title>Vsphere Exporter</title></head>
<body>
<h1>Vsphere Exporter</h1>
<p><a href="{metrics_path}">Metrics</a></p>
</body>
</html>
"""


class PollResultCollector:
    """prometheus_client collector exposing the samples of one poll"""

    def __init__(self, registry: MetricRegistry, samples: Sequence[Sample],
                 up: float, duration: float):
        self.registry = registry
        self.samples = samples
        self.up = up
        self.duration = duration

    def collect(self) -> Iterator[Metric]:
        yield GaugeMetricFamily(
            UP_METRIC, "Was the last scrape of vCenter metrics successful", value=self.up
        )
        yield GaugeMetricFamily(
            SCRAPE_DURATION_METRIC, "Duration of the last vCenter scrape", value=self.duration
        )

        families = OrderedDict(
            (definition.name, GaugeMetricFamily(
                definition.name, definition.help, labels=list(definition.label_names)
            ))
            for definition in self.registry.families()
        )
        families[AVAILABILITY_METRIC] = GaugeMetricFamily(
            AVAILABILITY_METRIC, AVAILABILITY_HELP, labels=[]
        )

        for sample in self.samples:
            family = families.get(sample.name)
            if family is None:
                logger.warning("Dropping sample of undeclared metric", metric=sample.name)
                continue
            family.add_metric(list(sample.labels), sample.value)

        yield from families.values()


def render_metrics(registry: MetricRegistry, samples: Iterable[Sample],
                   up: float = 1.0, duration: float = 0.0) -> bytes:
    """Render samples in the Prometheus text exposition format"""
    collector_registry = CollectorRegistry()
    collector_registry.register(PollResultCollector(registry, list(samples), up, duration))
    return generate_latest(collector_registry)


class ExporterServer:
    """aiohttp server exposing vSphere metrics"""

    def __init__(self, config: ExporterConfig, collector: VSphereCollector):
        self.config = config
        self.collector = collector
        self.registry = collector.registry
        self.app = web.Application()
        self.app.router.add_get(config.metrics_path, self.handle_metrics)
        self.app.router.add_get("/", self.handle_index)
        self._runner: Optional[web.AppRunner] = None
        self.shutdown_event: Optional[asyncio.Event] = None

    async def handle_metrics(self, request: web.Request) -> web.Response:
        started = time.monotonic()
        samples: Sequence[Sample] = ()
        up = 1.0
        try:
            result = await self.collector.poll()
            samples = result.samples
        except Exception as e:
            logger.error("Scrape failed", error=str(e), exc_info=True)
            up = 0.0

        body = render_metrics(self.registry, samples, up, time.monotonic() - started)
        return web.Response(body=body, headers={"Content-Type": CONTENT_TYPE_LATEST})

    async def handle_index(self, request: web.Request) -> web.Response:
        return web.Response(
            text=INDEX_PAGE.format(metrics_path=self.config.metrics_path),
            content_type="text/html"
        )

    async def start(self) -> None:
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.config.listen_host, self.config.listen_port)
        await site.start()
        logger.info("Listening", address=self.config.listen_address,
                    metrics_path=self.config.metrics_path)

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        logger.info("vSphere exporter stopped")

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown"""
        loop = asyncio.get_event_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self.shutdown_event.set)
            except NotImplementedError:
                # Windows event loops have no signal handlers
                pass

    async def serve_forever(self) -> None:
        self.shutdown_event = asyncio.Event()
        await self.start()
        self._setup_signal_handlers()
        try:
            await self.shutdown_event.wait()
            logger.info("Received shutdown signal")
        finally:
            await self.stop()
