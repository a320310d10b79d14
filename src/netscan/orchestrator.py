"""
Scan orchestration.

One scan runs these phases in order, each with its own timeouts:
1. Resolve the local subnet and seed the registry from the last snapshot
2. Run every discovery method concurrently, merging results as each finishes
3. TCP liveness sweep over the host range (skipping hosts already online)
4. ICMP fallback sweep over hosts still not online
5. Wait for port scans and classification, optionally enrich, save snapshot

Port scans are scheduled by the registry hook whenever a host is online with
no known ports, and run at most once per host per scan.
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Callable, Optional

from . import addressing
from ._types import (
    Device,
    DiscoverySource,
    NetworkInfo,
    ProbeResult,
    ScanProgress,
    ScanReport,
    now_utc,
)
from .config import ScannerConfig
from .discovery import (
    DiscoveryMethod,
    MulticastServiceBrowser,
    NeighborTableReader,
    SSDPProbe,
    WSDiscoveryProbe,
)
from .enrichment import HostEnricher, HTTPInfoGatherer, ReverseDNSResolver
from .liveness import ICMPProber, TCPProber
from .policy import get_policy
from .port_scanner import PortScanner, PortScannerFactory, services_for_ports
from .registry import DeviceRegistry
from .snapshot_store import SnapshotStore, SQLiteSnapshotStore
from .sweep import SubnetSweeper
from .vendor import OUIVendorLookup, VendorLookup

logger = logging.getLogger(__name__)

# Extra time a discovery method gets beyond its own timeout before it is abandoned
DISCOVERY_GRACE_SECONDS = 2.0


def build_discoverers(config: ScannerConfig) -> list[DiscoveryMethod]:
    """Enabled discovery methods for a configuration."""
    methods: list[DiscoveryMethod] = []

    if config.enable_mdns:
        methods.append(MulticastServiceBrowser(
            timeout=config.mdns_timeout,
            type_discovery_timeout=config.mdns_type_discovery_timeout,
            resolve_timeout=config.mdns_resolve_timeout,
        ))
    if config.enable_arp:
        methods.append(NeighborTableReader(timeout=config.arp_timeout))
    if config.enable_ssdp:
        methods.append(SSDPProbe(
            timeout=config.ssdp_timeout,
            search_targets=config.ssdp_search_targets,
        ))
    if config.enable_ws_discovery:
        methods.append(WSDiscoveryProbe(timeout=config.ws_discovery_timeout))

    return methods


def build_enricher(config: ScannerConfig) -> Optional[HostEnricher]:
    if not (config.enable_reverse_dns or config.enable_http_info):
        return None
    return HostEnricher(
        resolver=ReverseDNSResolver(config.reverse_dns_timeout) if config.enable_reverse_dns else None,
        http_gatherer=HTTPInfoGatherer(config.http_info_timeout) if config.enable_http_info else None,
    )


class ScanOrchestrator:
    """
    Runs one cancellable subnet scan at a time.

    Every collaborator can be injected; anything not given is built from
    the configuration.
    """

    def __init__(
        self,
        config: Optional[ScannerConfig] = None,
        registry: Optional[DeviceRegistry] = None,
        network_info: Optional[NetworkInfo] = None,
        discoverers: Optional[list[DiscoveryMethod]] = None,
        tcp_prober: Optional[TCPProber] = None,
        icmp_prober: Optional[ICMPProber] = None,
        port_scanner_factory: Optional[PortScannerFactory] = None,
        snapshot_store: Optional[SnapshotStore] = None,
        vendor_lookup: Optional[VendorLookup] = None,
        enricher: Optional[HostEnricher] = None,
        on_progress: Optional[Callable[[ScanProgress], None]] = None,
    ):
        self.config = config or ScannerConfig()

        if registry is None:
            registry = DeviceRegistry(
                policy=get_policy(self.config.source_policy),
                vendor_lookup=vendor_lookup or OUIVendorLookup(csv_path=self.config.oui_csv_path),
            )
        self.registry = registry
        self.registry.on_port_scan_needed = self._schedule_port_scan

        self._network_info = network_info
        self.discoverers = build_discoverers(self.config) if discoverers is None else discoverers
        self.tcp_prober = tcp_prober or TCPProber(self.config.tcp_probe_timeout)
        self.icmp_prober = icmp_prober or ICMPProber(self.config.icmp_timeout)
        self.port_scanner_factory = port_scanner_factory or self._default_port_scanner

        if snapshot_store is None and self.config.snapshot_db_path is not None:
            snapshot_store = SQLiteSnapshotStore(self.config.snapshot_db_path)
        self.snapshot_store = snapshot_store

        self.enricher = enricher if enricher is not None else build_enricher(self.config)
        self.on_progress = on_progress

        self.progress: Optional[ScanProgress] = None
        self.report: Optional[ScanReport] = None

        self._cancel_event = asyncio.Event()
        self._scan_task: Optional[asyncio.Task] = None
        self._port_scan_tasks: dict[str, asyncio.Task] = {}
        self._port_scans_completed: set[str] = set()

    def _default_port_scanner(self, ip: str) -> PortScanner:
        return PortScanner(
            ip,
            ports=self.config.port_scan_ports,
            timeout=self.config.port_scan_timeout,
            concurrency=self.config.port_scan_concurrency,
        )

    def _set_progress(self, progress: ScanProgress) -> None:
        self.progress = progress
        if self.on_progress:
            self.on_progress(progress)

    def _check_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise asyncio.CancelledError()

    def devices(self) -> list[Device]:
        """Current devices sorted by numeric IP."""
        return self.registry.devices()

    # -------------------------------------------------------------------------
    # Scan lifecycle
    # -------------------------------------------------------------------------

    def start_scan(self) -> asyncio.Task:
        """Run a scan in the background. Returns the scan task."""
        if self._scan_task is not None and not self._scan_task.done():
            return self._scan_task
        self._scan_task = asyncio.create_task(self.run_scan())
        return self._scan_task

    def cancel_scan(self) -> None:
        """Stop the running scan and every in-flight port scan."""
        logger.info("Cancelling scan")
        self._cancel_event.set()
        for task in list(self._port_scan_tasks.values()):
            task.cancel()
        if self._scan_task is not None and not self._scan_task.done():
            self._scan_task.cancel()

    async def run_scan(self) -> ScanReport:
        """
        Run a full subnet scan.

        Raises asyncio.CancelledError if the scan is cancelled; the report
        (available as self.report) then has status "cancelled".
        """
        self._cancel_event.clear()
        self._port_scan_tasks.clear()
        self._port_scans_completed.clear()
        self.progress = None

        report = ScanReport()
        self.report = report

        info = self._network_info or addressing.detect_network_info(self.config.interface)
        if info is None:
            report.status = "failed"
            report.error_message = "No active IPv4 interface"
            report.completed_at = now_utc()
            logger.error("Scan failed: no active IPv4 interface")
            return report

        report.network = info.key
        self.registry.network_info = info
        sweeper = SubnetSweeper(cancel_event=self._cancel_event, on_progress=self._set_progress)

        logger.info(f"Starting scan {report.scan_id} of {info.key} (local {info.local_ip})")

        try:
            await self._seed(info)
            await self._run_discovery(info, report)
            self._check_cancelled()

            hosts = addressing.host_range(info)

            def skip(ip: str) -> bool:
                return ip == info.local_ip or self.registry.is_online(ip)

            await sweeper.tcp_sweep(
                hosts,
                self.tcp_prober,
                self.config.sweep_ports,
                self._on_alive,
                skip=skip,
                timeout=self.config.tcp_probe_timeout,
            )
            report.methods_used.append("tcp_sweep")
            self._check_cancelled()

            if self.config.enable_icmp_fallback:
                await sweeper.icmp_sweep(
                    hosts,
                    self.icmp_prober,
                    self._on_alive,
                    skip=skip,
                    concurrency=self.config.icmp_concurrency,
                )
                report.methods_used.append("icmp")
                self._check_cancelled()

            await self._wait_port_scans()
            await self.registry.wait_idle()

            if self.enricher is not None:
                await self.enricher.enrich(self.registry)
                await self.registry.wait_idle()

            self._save_snapshot(info)
            report.status = "completed"

        except asyncio.CancelledError:
            report.status = "cancelled"
            await self._cancel_port_scans()
            logger.info(f"Scan {report.scan_id} cancelled")
            raise

        finally:
            report.completed_at = now_utc()
            report.devices = self.registry.devices()
            report.progress = self.progress
            self._record(report)

        logger.info(
            f"Scan completed: {report.devices_found} devices, "
            f"{report.online_count} online, methods={report.methods_used}"
        )
        return report

    # -------------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------------

    async def _seed(self, info: NetworkInfo) -> None:
        """Load devices from the previous scan of this subnet as offline records."""
        if self.snapshot_store is None:
            return
        try:
            snapshots = self.snapshot_store.load(info.key)
        except Exception as e:
            logger.error(f"Failed to load snapshot for {info.key}: {e}")
            return
        await self.registry.seed(snapshots)

    async def _run_discovery(self, info: NetworkInfo, report: ScanReport) -> None:
        methods = []
        for method in self.discoverers:
            if await method.is_available():
                methods.append(method)
            else:
                logger.warning(f"Discovery method {method.name} not available")

        async def run(method: DiscoveryMethod):
            logger.info(f"Running {method.name} discovery")
            try:
                hosts = await asyncio.wait_for(
                    method.discover(), method.timeout + DISCOVERY_GRACE_SECONDS
                )
            except asyncio.TimeoutError:
                logger.warning(f"{method.name} discovery timed out")
                hosts = []
            except Exception as e:
                logger.error(f"Error in {method.name} discovery: {e}")
                hosts = []
            return method, hosts

        tasks = [asyncio.create_task(run(m)) for m in methods]
        total = len(tasks)
        self._set_progress(ScanProgress(phase="discovery", scanned=0, total=total))

        try:
            for done, future in enumerate(asyncio.as_completed(tasks), start=1):
                method, hosts = await future
                self._check_cancelled()
                report.methods_used.append(method.name)

                admitted = 0
                for host in hosts:
                    if not addressing.in_subnet(info, host.ip_address):
                        logger.debug(f"{method.name}: {host.ip_address} is outside {info.key}")
                        continue
                    device = await self.registry.observe(
                        host.ip_address,
                        host.source,
                        is_online=None if host.passive else True,
                        hostname=host.hostname,
                        services=host.services,
                        open_ports=host.open_ports,
                        mac_address=host.mac_address,
                    )
                    if device is not None:
                        admitted += 1

                logger.info(f"{method.name} found {len(hosts)} hosts, {admitted} merged")
                self._set_progress(ScanProgress(phase="discovery", scanned=done, total=total))
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _on_alive(self, ip: str, result: ProbeResult) -> None:
        await self.registry.observe(ip, DiscoverySource.PING, is_online=True)
        await self.registry.record_rtt(ip, result.rtt_millis)

    # -------------------------------------------------------------------------
    # Port scans
    # -------------------------------------------------------------------------

    def _schedule_port_scan(self, ip: str) -> None:
        """Start a port scan for ip unless one already ran or is running this scan."""
        if self._cancel_event.is_set():
            return
        if ip in self._port_scan_tasks or ip in self._port_scans_completed:
            return
        self._port_scan_tasks[ip] = asyncio.create_task(self._port_scan(ip))

    async def _port_scan(self, ip: str) -> None:
        try:
            scanner = self.port_scanner_factory(ip)
            ports = await scanner.scan()
            if ports:
                logger.info(f"{ip}: open ports {[p.number for p in ports]}")
                # UNKNOWN never claims the discovery source
                await self.registry.observe(
                    ip,
                    DiscoverySource.UNKNOWN,
                    is_online=True,
                    open_ports=ports,
                    services=services_for_ports(ports),
                )
        except Exception as e:
            logger.warning(f"Port scan of {ip} failed: {e}")
        finally:
            self._port_scan_tasks.pop(ip, None)
            self._port_scans_completed.add(ip)

    async def _wait_port_scans(self) -> None:
        while self._port_scan_tasks:
            await asyncio.gather(*list(self._port_scan_tasks.values()), return_exceptions=True)

    async def _cancel_port_scans(self) -> None:
        tasks = list(self._port_scan_tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _save_snapshot(self, info: NetworkInfo) -> None:
        if self.snapshot_store is None:
            return
        try:
            self.snapshot_store.save(info.key, self.registry.snapshots())
        except Exception as e:
            logger.error(f"Failed to save snapshot for {info.key}: {e}")

    def _record(self, report: ScanReport) -> None:
        record_scan = getattr(self.snapshot_store, "record_scan", None)
        if record_scan is None:
            return
        try:
            record_scan(report)
        except Exception as e:
            logger.error(f"Failed to record scan history: {e}")


# -----------------------------------------------------------------------------
# CLI
# -----------------------------------------------------------------------------


def device_to_dict(device: Device) -> dict:
    data = device.to_snapshot().to_dict()
    data.update({
        "is_online": device.is_online,
        "open_ports": device.port_numbers,
        "confidence": device.confidence,
        "fingerprints": dict(device.fingerprints),
        "rtt_millis": device.rtt_millis,
        "display_services": [s.to_dict() for s in device.display_services()],
    })
    return data


def report_to_dict(report: ScanReport) -> dict:
    return {
        "scan_id": report.scan_id,
        "network": report.network,
        "status": report.status,
        "started_at": report.started_at.isoformat(),
        "completed_at": report.completed_at.isoformat() if report.completed_at else None,
        "methods_used": report.methods_used,
        "devices_found": report.devices_found,
        "online_count": report.online_count,
        "error": report.error_message,
        "devices": [device_to_dict(d) for d in report.devices],
    }


def format_table(report: ScanReport) -> str:
    lines = [
        f"Network {report.network}: {report.devices_found} devices "
        f"({report.online_count} online), status={report.status}",
        f"{'IP':<16} {'STATE':<8} {'TYPE':<12} {'SOURCE':<13} {'MAC':<18} {'VENDOR':<20} NAME",
    ]
    for d in report.devices:
        lines.append(
            f"{d.ip_address:<16} {'online' if d.is_online else 'offline':<8} "
            f"{d.device_type.value:<12} {d.discovery_source.value:<13} "
            f"{d.mac_address or '-':<18} {(d.manufacturer or '-')[:20]:<20} {d.hostname or d.name}"
        )
    return "\n".join(lines)


def main():
    """Entry point for the netscan command."""
    import argparse

    parser = argparse.ArgumentParser(description="LAN subnet discovery and device classification")
    parser.add_argument("--config", type=str, help="Path to YAML config file")
    parser.add_argument("--interface", type=str, help="Network interface to scan")
    parser.add_argument("--policy", type=str, help="Discovery source policy (default, extended)")
    parser.add_argument("--log-level", type=str, help="Log level")
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    args = parser.parse_args()

    # Load configuration
    if args.config:
        config = ScannerConfig.from_yaml(Path(args.config))
    else:
        config = ScannerConfig.from_env()

    # Override with CLI args
    if args.interface:
        config.interface = args.interface
    if args.policy:
        config.source_policy = args.policy
    if args.log_level:
        config.log_level = args.log_level

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    # Validate
    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Config error: {error}")
        sys.exit(1)

    async def run() -> Optional[ScanReport]:
        orchestrator = ScanOrchestrator(config)
        task = orchestrator.start_scan()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, orchestrator.cancel_scan)

        try:
            return await task
        except asyncio.CancelledError:
            logger.info("Interrupted")
            return orchestrator.report

    report = asyncio.run(run())
    if report is None:
        sys.exit(1)

    if args.json:
        print(json.dumps(report_to_dict(report), indent=2))
    else:
        print(format_table(report))

    if report.status == "failed":
        sys.exit(1)
    if report.status == "cancelled":
        sys.exit(130)


if __name__ == "__main__":
    main()
