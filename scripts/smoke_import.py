import argparse
import asyncio
import json
import pathlib
import sys

ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from recipebox.app.infra.db.memory_usage_repo import InMemoryUsageEventRepository
from recipebox.app.services.usage_limiter import UsageLimiter
from recipebox.services.errors import ServiceError
from recipebox.services.ingest import RecipeImporter


async def run_import(importer: RecipeImporter, url: str) -> None:
    print("\n===", url)
    try:
        result = await importer.import_from_url(url, "smoke-test")
    except ServiceError as exc:
        print(f"failed: {exc.kind} ({exc.status_code}): {exc}")
        return

    print("method:", result.method.value)
    print(json.dumps(result.recipe.to_payload(), indent=2, ensure_ascii=False))
    if result.usage:
        print("usage:", result.usage.to_dict())


async def main() -> None:
    parser = argparse.ArgumentParser(description="Quick recipe import smoke test")
    parser.add_argument("url", nargs="+")
    parser.add_argument("--rpm", type=int, default=15)
    args = parser.parse_args()

    # Usage stays in process so smoke runs never touch the shared log
    limiter = UsageLimiter(repository=InMemoryUsageEventRepository(), rpm_limit=args.rpm)
    importer = RecipeImporter(limiter=limiter)

    for url in args.url:
        await run_import(importer, url)


if __name__ == "__main__":
    asyncio.run(main())
