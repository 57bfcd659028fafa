from __future__ import annotations

import uvicorn
from fastapi import FastAPI

from billing.api import create_billing_app
from billing.config import Settings, load_dotenv
from billing.document_service import DocumentService
from billing.logger import configure_logging


def create_app_from_env() -> FastAPI:
    load_dotenv()
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    return create_billing_app(
        DocumentService.from_settings(settings),
        seller_state=settings.seller_state,
        default_tax_rate=settings.default_tax_rate,
        dead_letter_path=settings.dead_letter_path,
    )


def main() -> None:
    load_dotenv()
    settings = Settings.from_env()
    uvicorn.run(
        "billing.server:create_app_from_env",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
