# src/recordstore/api/__main__.py
from __future__ import annotations

import uvicorn

from recordstore.env import load_dotenv_if_present


def main() -> None:
    # Load .env early so RECORDSTORE_* vars exist before anything reads them.
    load_dotenv_if_present()

    # Import after dotenv load (prevents "config read before env" surprises)
    from recordstore.api.app import create_app
    from recordstore.api.structured_logging import configure_structured_logging
    from recordstore.runtime.store_config import load_store_config

    cfg = load_store_config()
    configure_structured_logging(cfg.log_level)

    uvicorn.run(create_app(cfg=cfg), host=cfg.api_host, port=cfg.api_port, log_level=cfg.log_level.lower())


if __name__ == "__main__":
    main()
