from __future__ import annotations

import os

import uvicorn
from app.main import app as fastapi_app


def _env_port(default: int) -> int:
    try:
        return int(os.getenv("KEYHUB_PORT", str(default)))
    except (TypeError, ValueError):
        return default


def main() -> None:
    # Behind a TLS-terminating proxy, forwarded headers keep redirect URLs on https.
    uvicorn.run(
        fastapi_app,
        host=os.getenv("KEYHUB_HOST", "127.0.0.1"),
        port=_env_port(8000),
        log_level=os.getenv("KEYHUB_LOG_LEVEL", "info"),
        proxy_headers=True,
        forwarded_allow_ips=os.getenv("KEYHUB_FORWARDED_ALLOW_IPS", "127.0.0.1"),
    )


if __name__ == "__main__":
    main()
