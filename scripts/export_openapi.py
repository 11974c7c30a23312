from __future__ import annotations

import json
import sys
from pathlib import Path

from fastapi import FastAPI

sys.path.insert(0, str(Path(__file__).parent.parent))

from campaign_core.api.main import create_app  # noqa: E402


def export_openapi(app: FastAPI, destination: Path) -> None:
    """Persist the OpenAPI schema to the given destination."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    schema = app.openapi()
    destination.write_text(json.dumps(schema, indent=2))


def main() -> None:
    output = Path("docs/api/openapi.json")
    export_openapi(create_app(), output)


if __name__ == "__main__":
    main()
