"""Run the retrieval benchmark against a live campus RAG server.

Usage:
    1. Start the server:   python -m campus_rag.main
    2. Seed data:          python scripts/seed_documents.py
    3. Run evaluation:     python scripts/run_eval.py --api-key KEY [--with-answer] [--output PATH]
"""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path

import httpx

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_TIMEOUT = 600.0


def print_header(title: str) -> None:
    print(f"\n{'=' * 64}")
    print(f"  {title}")
    print(f"{'=' * 64}")


def print_summary(payload: dict) -> None:
    print_header("EVALUATION SUMMARY")
    print(f"  Run id:          {payload['run_id']}")
    print(f"  Total items:     {payload['total']}")
    print(f"  Hit rate:        {payload['hit_rate']:.1%}")
    similarity = payload.get("avg_similarity")
    print(f"  Avg similarity:  {similarity:.4f}" if similarity is not None else "  Avg similarity:  n/a")


def print_item_details(results: list[dict]) -> None:
    print_header("INDIVIDUAL ITEM RESULTS")
    for r in results:
        if r.get("error"):
            status = "ERROR"
        elif r["hit"]:
            status = "HIT"
        else:
            status = "MISS"
        similarity = r.get("similarity")
        sim_text = f"{similarity:.3f}" if similarity is not None else "-"
        print(f"  [{status:>5}] {r['item_id']:<16} | sim={sim_text} | {r['question']}")
        if r.get("error"):
            print(f"         error: {r['error']}")


async def main(base_url: str, api_key: str, with_answer: bool, output_path: Path) -> None:
    print(f"Running evaluation against {base_url} ...")
    async with httpx.AsyncClient(base_url=base_url, timeout=httpx.Timeout(DEFAULT_TIMEOUT)) as client:
        token = await client.post("/auth/token", json={"api_key": api_key, "user_id": "eval"})
        token.raise_for_status()
        headers = {"Authorization": f"Bearer {token.json()['access_token']}"}

        response = await client.post(
            "/evaluation/run", json={"with_answer": with_answer}, headers=headers
        )
        response.raise_for_status()
        payload = response.json()

    print_summary(payload)
    print_item_details(payload["results"])

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)
    print(f"\nRaw results saved to {output_path}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the campus RAG retrieval benchmark")
    parser.add_argument(
        "--base-url",
        default=DEFAULT_BASE_URL,
        help=f"Base URL of the running server (default: {DEFAULT_BASE_URL})",
    )
    parser.add_argument("--api-key", required=True, help="API key accepted by /auth/token")
    parser.add_argument("--with-answer", action="store_true", help="Also generate and score answers")
    parser.add_argument(
        "--output",
        default="data/eval_results.json",
        help="Path to save raw results JSON (default: data/eval_results.json)",
    )
    args = parser.parse_args()
    asyncio.run(main(args.base_url, args.api_key, args.with_answer, Path(args.output)))
