import sys

import uvicorn

from security_api.core.config import settings


def main() -> None:
    uvicorn.run(
        "security_api.main:app",
        host="0.0.0.0",
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    try:
        main()
    except Exception as exc:  # pragma: no cover - last line of defense
        print(f"Failed to start API: {exc}", file=sys.stderr)
        raise
