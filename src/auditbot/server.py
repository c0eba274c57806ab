"""HTTP surface: registry webhook and health endpoints."""

import asyncio
import json

from fastapi import FastAPI, HTTPException, Request

from auditbot.config import AuditbotConfig
from auditbot.triggers.webhooks import SIGNATURE_HEADER, handle_package_publish, verify_signature


def create_app(config: AuditbotConfig) -> FastAPI:
    app = FastAPI(title="auditbot", version="0.1.0", docs_url=None, redoc_url=None)

    @app.post("/webhooks/npm")
    async def npm_webhook(request: Request) -> dict:
        """Registry hook deliveries; HMAC is checked over the raw body before parsing."""
        body = await request.body()
        signature = request.headers.get(SIGNATURE_HEADER)
        if config.webhook.secret and not verify_signature(body, signature, config.webhook.secret):
            raise HTTPException(status_code=401, detail="Incoming payload is not valid")

        try:
            payload = json.loads(body)
        except json.JSONDecodeError:
            raise HTTPException(status_code=400, detail="Payload is not JSON")
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Payload is not a JSON object")

        status = await asyncio.to_thread(handle_package_publish, config, body, payload, signature)
        return {"outcome": status.outcome, "message": status.message}

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "version": "0.1.0"}

    return app
