"""
Main detection service with progressive detection strategies

Single-target detection walks the strategies (cache, priority addresses,
network sweep, backend) and stops at the first verified router. Full
inventory sweeps priority + range addresses and collects every router up to
a safety cap.
"""

import asyncio
import logging
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from .address_enumerator import DEFAULT_PRIORITY_TABLE, generate_ip_range, get_priority_ips, parse_scan_range
from .backend_scanner import BackendScanner
from .batching import AdaptiveBatchSizer, fixed_batches
from .cache import ResultCache
from .cancellation import CancellationCoordinator, CancellationToken
from .exceptions import DetectionCancelled
from .fingerprint import recommended_capability, unique_capabilities, verify_fingerprint
from .models import (
    AddressProbeResult, DetectionSource, DetectionStrategy, ProgressStage, RouterCandidate
)
from .probes import ProbeSet, create_probe_set
from .progress import ProgressEmitter, ProgressSink, percent

logger = logging.getLogger(__name__)

DEFAULT_SCAN_RANGE = "192.168.88.0/24"
DEFAULT_STRATEGIES = [
    DetectionStrategy.CACHED,
    DetectionStrategy.PRIORITY_IPS,
    DetectionStrategy.NETWORK_SCAN,
]


class RouterDetection:
    """Router discovery service: one instance owns one cache and one set of probes"""

    def __init__(self, config: Dict, probe_set: Optional[ProbeSet] = None,
                 cache: Optional[ResultCache] = None, backend: Optional[BackendScanner] = None):
        self.config = config
        self.probe_set = probe_set or create_probe_set(config)
        self.cache = cache if cache is not None else ResultCache()
        self.backend = backend or BackendScanner({})
        self._cancellation = CancellationCoordinator()

        self.default_scan_range = config.get('default_scan_range', DEFAULT_SCAN_RANGE)
        self.default_strategies = config.get('strategies', DEFAULT_STRATEGIES)
        self.priority_table = config.get('priority_ips', DEFAULT_PRIORITY_TABLE)
        self.max_results = config.get('max_results', 10)

        # Network sweep (single-target) uses adaptive batches
        self.initial_batch_size = config.get('initial_batch_size', 10)
        self.min_batch_size = config.get('min_batch_size', 5)
        self.max_batch_size = config.get('max_batch_size', 20)
        self.batch_grow_step = config.get('batch_grow_step', 5)
        self.batch_shrink_step = config.get('batch_shrink_step', 2)
        self.grow_threshold = config.get('grow_threshold', 0.5)
        self.shrink_threshold = config.get('shrink_threshold', 0.1)
        self.network_batch_delay = config.get('network_batch_delay', 0.05)

        # Full inventory uses fixed batches
        self.full_scan_batch_size = config.get('full_scan_batch_size', 15)
        self.full_scan_batch_delay = config.get('full_scan_batch_delay', 0.1)

    @classmethod
    def from_config(cls, config: Dict, probe_set: Optional[ProbeSet] = None) -> 'RouterDetection':
        """Build the service from the full application config"""
        detection_config = config.get('detection', {})
        cache_config = config.get('cache', {})
        cache = ResultCache(
            ttl_seconds=cache_config.get('ttl_seconds', 300),
            scope_by_range=cache_config.get('scope_by_range', False)
        )
        return cls(
            detection_config,
            probe_set=probe_set,
            cache=cache,
            backend=BackendScanner(config.get('backend', {}))
        )

    # ================== PUBLIC API ==================

    async def detect(self, scan_range: Optional[str] = None, use_cache: bool = True,
                     strategies: Optional[Sequence[Union[str, DetectionStrategy]]] = None,
                     progress_sink: Optional[ProgressSink] = None,
                     cancel_signal: Any = None) -> Optional[RouterCandidate]:
        """
        Find the first verified router.
        Returns None when every strategy comes up empty and raises
        DetectionCancelled if the scan is cancelled.
        """
        scan_range = scan_range or self.default_scan_range

        async def run(emitter: ProgressEmitter, token: CancellationToken) -> Optional[RouterCandidate]:
            await emitter.emit(ProgressStage.INITIALIZING, 0, "Starting detection...")
            parse_scan_range(scan_range)
            plan = self._resolve_strategies(strategies)
            logger.info(f"[LAUNCH] Detecting router in {scan_range} with strategies: {[s.value for s in plan]}")

            router = await self._run_strategies(plan, scan_range, use_cache, emitter, token)

            if router:
                await emitter.emit(ProgressStage.COMPLETE, 100, f"Found router at {router.address}",
                                   current=1, total=1)
            else:
                await emitter.emit(ProgressStage.COMPLETE, 100, "No router found", current=0, total=0)
                logger.info(f"No router found in {scan_range}")
            return router

        return await self._execute(run, progress_sink, cancel_signal)

    async def detect_all(self, scan_range: Optional[str] = None,
                         progress_sink: Optional[ProgressSink] = None,
                         cancel_signal: Any = None,
                         max_results: Optional[int] = None) -> List[RouterCandidate]:
        """Find every verified router in priority + range addresses, up to max_results"""
        scan_range = scan_range or self.default_scan_range
        limit = self.max_results if max_results is None else max_results
        if limit < 1:
            raise ValueError(f"max_results must be at least 1, got {limit}")

        async def run(emitter: ProgressEmitter, token: CancellationToken) -> List[RouterCandidate]:
            await emitter.emit(ProgressStage.INITIALIZING, 0, "Initializing full scan...", found_count=0)
            return await self._scan_all(scan_range, limit, emitter, token)

        return await self._execute(run, progress_sink, cancel_signal)

    def cancel(self) -> int:
        """Cancel every scan currently running on this instance"""
        return self._cancellation.cancel()

    def clear_cache(self) -> None:
        self.cache.clear()

    @property
    def scan_in_progress(self) -> bool:
        return self._cancellation.active_count > 0

    # ================== SCAN LIFECYCLE ==================

    async def _execute(self, run: Callable[[ProgressEmitter, CancellationToken], Awaitable[Any]],
                       progress_sink: Optional[ProgressSink], cancel_signal: Any) -> Any:
        """Wire up progress and cancellation, and map outcomes to terminal progress stages"""
        emitter = ProgressEmitter(progress_sink)
        source = self._cancellation.begin(cancel_signal)
        try:
            return await run(emitter, source.token)
        except DetectionCancelled:
            logger.info("Detection cancelled")
            await emitter.emit(ProgressStage.CANCELLED, 0, "Detection cancelled", current=0, total=0)
            raise
        except Exception as e:
            logger.error(f"Detection failed: {e}")
            await emitter.emit(ProgressStage.ERROR, 0, str(e), current=0, total=0)
            raise
        finally:
            self._cancellation.finish(source)

    def _resolve_strategies(self, strategies) -> List[DetectionStrategy]:
        requested = self.default_strategies if strategies is None else strategies
        plan = []
        for strategy in requested:
            try:
                resolved = strategy if isinstance(strategy, DetectionStrategy) else DetectionStrategy(strategy)
            except ValueError:
                raise ValueError(f"Unknown detection strategy: {strategy}") from None
            if resolved not in plan:
                plan.append(resolved)
        return plan

    async def _run_strategies(self, plan: List[DetectionStrategy], scan_range: str, use_cache: bool,
                              emitter: ProgressEmitter, token: CancellationToken) -> Optional[RouterCandidate]:
        priority_scanned: List[str] = []

        for strategy in plan:
            token.raise_if_cancelled()
            router = None

            if strategy == DetectionStrategy.CACHED:
                if not use_cache:
                    continue
                await emitter.emit(ProgressStage.CACHE, 0, "Checking cache...")
                cached = self.cache.lookup(scan_range)
                if cached:
                    await emitter.emit(ProgressStage.CACHE, 100, "Found in cache")
                    logger.info(f"[CACHE] Using cached router {cached.address}")
                    return replace(cached, source=DetectionSource.CACHE)
                continue

            if strategy == DetectionStrategy.PRIORITY_IPS:
                await emitter.emit(ProgressStage.PRIORITY, 0, "Checking common addresses...")
                priority_scanned = get_priority_ips(scan_range, self.priority_table)
                router = await self._scan_priority_ips(priority_scanned, emitter, token)

            elif strategy == DetectionStrategy.NETWORK_SCAN:
                await emitter.emit(ProgressStage.NETWORK, 0, "Scanning network...")
                router = await self._scan_network(scan_range, priority_scanned, emitter, token)

            elif strategy == DetectionStrategy.BACKEND_SCAN:
                await emitter.emit(ProgressStage.BACKEND, 0, "Using backend scanner...")
                router = await self.backend.scan(scan_range, token)
                if router is None:
                    await emitter.emit(ProgressStage.BACKEND, 100, "Backend scanner unavailable")
                else:
                    router = replace(router, source=DetectionSource.BACKEND_SCAN)

            if router:
                self.cache.put(router)
                return router

        return None

    # ================== PROBING ==================

    async def _probe_address(self, address: str, token: CancellationToken,
                             source: DetectionSource) -> AddressProbeResult:
        """Probe one address and verify whatever answered"""
        if token.cancelled:
            return AddressProbeResult(address, [])

        try:
            found = await self.probe_set.probe(address, token)
        except Exception as e:
            logger.debug(f"Probing {address} failed: {e!r}")
            found = []

        capabilities = unique_capabilities(found)
        if not capabilities:
            return AddressProbeResult(address, [])

        fingerprint = verify_fingerprint(capabilities)
        if not fingerprint.verified:
            logger.debug(f"{address} answered on {[c.kind.value for c in capabilities]} but is not a router")
            return AddressProbeResult(address, capabilities)

        candidate = RouterCandidate(
            address=address,
            capabilities=capabilities,
            recommended=recommended_capability(capabilities),
            fingerprint=fingerprint,
            source=source
        )
        logger.info(
            f"[OK] Router verified at {address} via {fingerprint.method.value} "
            f"(confidence {fingerprint.confidence})"
        )
        return AddressProbeResult(address, capabilities, candidate)

    async def _probe_batch(self, batch: List[str], token: CancellationToken,
                           source: DetectionSource) -> List[AddressProbeResult]:
        """Probe a batch concurrently, results in batch order"""
        return list(await asyncio.gather(*(self._probe_address(ip, token, source) for ip in batch)))

    # ================== STRATEGIES ==================

    async def _scan_priority_ips(self, priority_ips: List[str], emitter: ProgressEmitter,
                                 token: CancellationToken) -> Optional[RouterCandidate]:
        """Probe every priority address at once; earliest address in the list wins"""
        total = len(priority_ips)
        await emitter.emit(ProgressStage.PRIORITY, 0, f"Checking {total} common addresses...", total=total)
        token.raise_if_cancelled()

        completed = 0

        async def probe_and_report(ip: str) -> AddressProbeResult:
            nonlocal completed
            result = await self._probe_address(ip, token, DetectionSource.PRIORITY_SCAN)
            completed += 1
            await emitter.emit(ProgressStage.PRIORITY, percent(completed, total), current=completed, total=total)
            return result

        results = await asyncio.gather(*(probe_and_report(ip) for ip in priority_ips))
        token.raise_if_cancelled()

        for result in results:
            if result.candidate:
                return result.candidate
        return None

    async def _scan_network(self, scan_range: str, already_scanned: List[str], emitter: ProgressEmitter,
                            token: CancellationToken) -> Optional[RouterCandidate]:
        """Sweep the range in adaptive batches, stopping at the first router"""
        skip = set(already_scanned)
        ips = [ip for ip in generate_ip_range(scan_range) if ip not in skip]
        total = len(ips)

        sizer = AdaptiveBatchSizer(
            initial=self.initial_batch_size,
            minimum=self.min_batch_size,
            maximum=self.max_batch_size,
            grow_step=self.batch_grow_step,
            shrink_step=self.batch_shrink_step,
            grow_above=self.grow_threshold,
            shrink_below=self.shrink_threshold
        )

        await emitter.emit(ProgressStage.NETWORK, 0, f"Scanning {total} addresses...",
                           total=total, batch_size=sizer.size)
        logger.info(f"[SEARCH] Network scan of {total} addresses in {scan_range}")

        scanned = 0
        while scanned < total:
            token.raise_if_cancelled()

            batch = ips[scanned:scanned + sizer.size]
            results = await self._probe_batch(batch, token, DetectionSource.NETWORK_SCAN)
            token.raise_if_cancelled()
            scanned += len(batch)

            for result in results:
                if result.candidate:
                    await emitter.emit(ProgressStage.NETWORK, percent(scanned, total),
                                       f"Found router at {result.address}",
                                       current=scanned, total=total, batch_size=sizer.size)
                    return result.candidate

            responsive = sum(1 for r in results if r.responsive)
            sizer.record(responsive, len(results) - responsive)

            await emitter.emit(ProgressStage.NETWORK, percent(scanned, total),
                               current=scanned, total=total, batch_size=sizer.size)

            if scanned % 50 < len(batch):
                logger.info(f"Network scan progress: {scanned}/{total} addresses")

            if scanned < total:
                await asyncio.sleep(self.network_batch_delay)

        return None

    async def _scan_all(self, scan_range: str, limit: int, emitter: ProgressEmitter,
                        token: CancellationToken) -> List[RouterCandidate]:
        """Full inventory: fixed batches over priority + range, deduplicated by address"""
        addresses = list(dict.fromkeys(
            get_priority_ips(scan_range, self.priority_table) + generate_ip_range(scan_range)
        ))
        total = len(addresses)
        found: Dict[str, RouterCandidate] = {}

        await emitter.emit(ProgressStage.SCANNING, 0, f"Scanning {total} addresses for all routers...",
                           total=total, found_count=0)
        logger.info(f"[SEARCH] Full scan of {total} addresses in {scan_range} (limit {limit})")

        scanned = 0
        for batch in fixed_batches(addresses, self.full_scan_batch_size):
            token.raise_if_cancelled()
            if len(found) >= limit:
                break

            results = await self._probe_batch(batch, token, DetectionSource.FULL_SCAN)
            token.raise_if_cancelled()
            scanned += len(batch)

            for result in results:
                if not result.candidate or result.address in found or len(found) >= limit:
                    continue
                found[result.address] = result.candidate
                self.cache.put(result.candidate)
                await emitter.emit(ProgressStage.SCANNING, percent(scanned, total),
                                   f"Found {len(found)} router(s)...",
                                   current=scanned, total=total, found_count=len(found))

            await emitter.emit(ProgressStage.SCANNING, percent(scanned, total),
                               current=scanned, total=total, found_count=len(found))

            if len(found) >= limit:
                logger.info(f"Router limit of {limit} reached after {scanned} addresses")
                break
            if scanned < total:
                await asyncio.sleep(self.full_scan_batch_delay)

        routers = list(found.values())
        await emitter.emit(ProgressStage.COMPLETE, 100, f"Scan complete! Found {len(routers)} router(s)",
                           total=total, found_count=len(routers))
        logger.info(f"[PASS] Full scan complete: {len(routers)} router(s) in {scanned} addresses")
        return routers
