"""Run the HookRelay API server: ``python -m hookrelay``."""

from __future__ import annotations

import uvicorn

from hookrelay.config import Settings


def main() -> None:
    settings = Settings()
    uvicorn.run(
        "hookrelay.api:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
