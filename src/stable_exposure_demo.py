from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

from prometheus_client import start_http_server

from stable_exposure_lab import (
    CacheServiceClient,
    MetricsSnapshot,
    Pipeline,
    SnapshotRepository,
    StablecoinConfig,
    build_token_families,
    load_config,
    load_source_policies,
    load_stablecoins,
    usable_manual_defaults,
)
from stable_exposure_lab.reporting import export_csv, export_detailed_csv, snapshot_table


logger = logging.getLogger(__name__)


async def collect(
    cfg: dict[str, Any], stablecoins: tuple[StablecoinConfig, ...]
) -> SnapshotRepository:
    """Build the HTTP client and engine from ``cfg`` and collect every snapshot."""

    service = cfg.get("service", {})
    engine_cfg = cfg.get("engine", {})
    async with CacheServiceClient(
        str(service.get("base_url")),
        token_families=build_token_families(stablecoins),
        timeout=float(service.get("timeout", 10.0)),
    ) as client:
        engine = MetricsSnapshot(
            client,
            policies=load_source_policies(cfg.get("policies")),
            max_concurrency=int(engine_cfg.get("max_concurrency", 8)),
            manual_defaults=usable_manual_defaults(),
        )
        timeout = engine_cfg.get("snapshot_timeout")
        pipeline = Pipeline(
            stablecoins, engine, timeout=float(timeout) if timeout is not None else None
        )
        return await pipeline.run_async()


def main() -> None:
    """Run the dashboard once using configuration from file or environment variables."""

    cfg = load_config(sys.argv[1] if len(sys.argv) > 1 else None)
    logging.basicConfig(
        level=str(cfg.get("logging", {}).get("level", "INFO")).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    stablecoins = load_stablecoins(cfg.get("registry", {}).get("path"))
    if port := cfg.get("metrics_port"):
        start_http_server(int(port))
        logger.info("Prometheus metrics on :%s", port)

    repo = asyncio.run(collect(cfg, stablecoins))
    print(snapshot_table(repo).to_string())

    stats = repo.aggregate_stats()
    print(
        f"Stablecoins: {stats['total_stablecoins']}, "
        f"with errors: {stats['stablecoins_with_errors']}, "
        f"all loaded: {stats['all_loaded']}"
    )

    out = cfg.get("output", {})
    if out.get("outdir"):
        outdir = Path(out["outdir"])
        path = export_csv(repo, outdir)
        print(f"Wrote {path}")
        if out.get("detailed", True):
            print(f"Wrote {export_detailed_csv(repo, outdir)}")


if __name__ == "__main__":
    main()
