"""
Failure scenario runner for the payments API.

Checks that the API is up, runs each donation failure scenario against it in
order, writes results/failure_results.json and prints a Rich table with the
idempotency key and provider resources each scenario saw.  Exits non-zero
when any scenario fails, so it can gate a deploy.

Usage:
    PAYMENTS_API_URL=http://localhost:8000 python -m failure_scenarios.runner
    python -m failure_scenarios.runner key_reuse_conflict concurrent_identical
"""
from __future__ import annotations

import asyncio
import json
import os
import sys
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path

import httpx
from rich.console import Console
from rich.table import Table

from failure_scenarios import ORG_SLUG, FailureResult
from failure_scenarios.scenarios import (
    client_retry,
    concurrent_identical,
    key_reuse_conflict,
    network_timeout,
    server_generated_key,
)

PAYMENTS_API_URL = os.getenv("PAYMENTS_API_URL", "http://localhost:8000")

SCENARIOS = {
    module.SCENARIO_NAME: module
    for module in (
        client_retry,
        network_timeout,
        concurrent_identical,
        key_reuse_conflict,
        server_generated_key,
    )
}

RESULTS_PATH = Path(__file__).parent.parent / "results" / "failure_results.json"

console = Console()


async def api_is_healthy(base_url: str) -> bool:
    try:
        async with httpx.AsyncClient(timeout=5.0) as client:
            r = await client.get(f"{base_url}/health")
    except httpx.HTTPError:
        return False
    return r.status_code == 200


async def run_scenarios(base_url: str, names: list[str]) -> list[FailureResult]:
    results: list[FailureResult] = []
    for name in names:
        try:
            result = await SCENARIOS[name].run(base_url=base_url)
        except Exception as exc:
            result = FailureResult(
                scenario_name=name,
                expected_outcome="scenario completes",
                actual_outcome="runner exception",
                correct=False,
                error=str(exc),
            )
        results.append(result)
    return results


def save_results(base_url: str, results: list[FailureResult]) -> Path:
    RESULTS_PATH.parent.mkdir(exist_ok=True)
    with open(RESULTS_PATH, "w") as fh:
        json.dump(
            {
                "run_at": datetime.now(timezone.utc).isoformat(),
                "api_url": base_url,
                "organization_slug": ORG_SLUG,
                "results": [asdict(r) for r in results],
            },
            fh,
            indent=2,
        )
    return RESULTS_PATH


def _resources(details: dict) -> str:
    ids = list(details.get("unique_ids") or details.get("sessions") or [])
    ids += [details[k] for k in ("first_id", "second_id", "retry_id") if details.get(k)]
    return ", ".join(sorted({i for i in ids if i})) or "-"


def print_table(results: list[FailureResult]) -> None:
    table = Table(title=f"Donation failure scenarios ({ORG_SLUG})", show_lines=True)
    table.add_column("Scenario", style="cyan", no_wrap=True)
    table.add_column("Idempotency key", style="magenta")
    table.add_column("Provider resources", style="white")
    table.add_column("Expected", style="white")
    table.add_column("Actual", style="white")
    table.add_column("Result", justify="center")

    for r in results:
        table.add_row(
            r.scenario_name,
            str(r.details.get("idempotency_key") or "-"),
            _resources(r.details),
            r.expected_outcome,
            r.actual_outcome or (r.error or ""),
            "[green]PASS[/green]" if r.correct else "[red]FAIL[/red]",
        )

    console.print(table)
    failed = sum(1 for r in results if not r.correct)
    console.print(f"\n[bold]{len(results) - failed} passed, {failed} failed[/bold]")


async def main(argv: list[str]) -> int:
    names = argv or list(SCENARIOS)
    unknown = [n for n in names if n not in SCENARIOS]
    if unknown:
        console.print(f"[red]Unknown scenarios: {', '.join(unknown)}[/red]")
        return 2

    if not await api_is_healthy(PAYMENTS_API_URL):
        console.print(f"[red]Payments API not reachable at {PAYMENTS_API_URL}[/red]")
        return 2

    results = await run_scenarios(PAYMENTS_API_URL, names)
    path = save_results(PAYMENTS_API_URL, results)
    print_table(results)
    console.print(f"Results written to {path}")
    return 0 if all(r.correct for r in results) else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1:])))
