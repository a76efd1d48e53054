from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from subpagegen.config import settings
from subpagegen.logger import logger
from subpagegen.polling.poller import HttpStatusFetcher, PollOutcome, PollResult, StatusPoller
from subpagegen.rendering.transcoder import component_filename, transcode


def _parse_city(value: str) -> Dict[str, str]:
    """
    "Berlin" | "Berlin:10115" | "Berlin:10115:Germany"
    """
    parts = [p.strip() for p in value.split(":")]
    city: Dict[str, str] = {"name": parts[0]}
    if len(parts) > 1 and parts[1]:
        city["postcode"] = parts[1]
    if len(parts) > 2 and parts[2]:
        city["country"] = parts[2]
    return city


def build_payload(domain: str, cities: List[str], branche: Optional[str], description: Optional[str]) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"domain": domain, "cities": [_parse_city(c) for c in cities]}
    if branche:
        payload["branche"] = branche
    if description:
        payload["description"] = description
    return payload


def write_components(data: Dict[str, Any], out_dir: Path) -> List[Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []
    for city in data.get("cities") or []:
        content = city.get("generated_html")
        if city.get("status") != "completed" or not content:
            continue
        name = city.get("name") or "Generated Location"
        path = out_dir / component_filename(name)
        path.write_text(transcode(content, name, data.get("domain") or ""), encoding="utf-8")
        written.append(path)
    return written


async def submit_and_wait(base_url: str, payload: Dict[str, Any], out_dir: Path) -> PollResult:
    async with httpx.AsyncClient(base_url=base_url, timeout=settings.DISPATCH_TIMEOUT_SECONDS + 5) as client:
        r = await client.post("/jobs", json=payload)
        r.raise_for_status()
        created = r.json()

    job_id = created["job_id"]
    logger.info(f"Job submitted: {job_id}", extra={"job_id": job_id, "dispatched": created.get("dispatched")})
    if not created.get("dispatched"):
        raise SystemExit(f"Job {job_id} was not dispatched: {created.get('error') or created.get('status')}")

    def _on_ready(result: PollResult) -> None:
        logger.info(result.message, extra={"job_id": job_id})

    def _on_handoff(result: PollResult) -> None:
        written = write_components(result.payload or {}, out_dir)
        logger.info(f"Wrote {len(written)} components", extra={"job_id": job_id, "files": [str(p) for p in written]})

    poller = StatusPoller(
        HttpStatusFetcher(base_url),
        initial_delay=settings.POLL_INITIAL_DELAY_SECONDS,
        interval=settings.POLL_INTERVAL_SECONDS,
        max_attempts=settings.POLL_MAX_ATTEMPTS,
        settle_delay=settings.POLL_SETTLE_DELAY_SECONDS,
        on_ready=_on_ready,
        on_handoff=_on_handoff,
    )
    return await poller.run(job_id)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Submit a subpage job, wait for it and write one TSX component per city.",
    )
    parser.add_argument("domain", help="Business website, e.g. https://example.com")
    parser.add_argument(
        "--city",
        action="append",
        default=[],
        help="City as NAME[:POSTCODE[:COUNTRY]]; repeat for several cities.",
    )
    parser.add_argument("--branche", default=None)
    parser.add_argument("--description", default=None)
    parser.add_argument("--base-url", default=settings.PUBLIC_BASE_URL)
    parser.add_argument("--out", default="subpages", help="Output directory for .tsx files.")
    return parser


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    if not args.city:
        parser.error("at least one --city is required")

    payload = build_payload(args.domain, args.city, args.branche, args.description)
    result = asyncio.run(submit_and_wait(args.base_url, payload, Path(args.out)))
    if result.outcome is not PollOutcome.SUCCESS:
        raise SystemExit(result.message)


if __name__ == "__main__":
    main()
