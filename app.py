"""Sanity webhook receiver.

Sanity POSTs the ids of created, updated and deleted documents here; the
handler syncs them into the search index before answering so Sanity can
redeliver on failure.

Run locally:
    python app.py
"""

import json
import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config.settings import Settings, get_settings
from core.bootstrap import build_indexer, build_sanity_client
from core.change_set import WebhookPayloadError
from core.indexer import DocumentStore, Indexer, SyncError, SyncOptions, SyncOutcome
from core.signature import SIGNATURE_HEADER_NAME, verify_signature
from utils.logging_utils import configure_logging

logger = logging.getLogger(__name__)


def _summarize(outcome: SyncOutcome) -> dict:
    return {
        "success": True,
        "saved": outcome.saved_count,
        "deleted": outcome.deleted_count,
        "indices": [
            {
                "index": getattr(o.index, "name", repr(o.index)),
                "saved": len(o.saved),
                "deleted": len(o.deleted_ids),
                "purged_tags": len(o.purged_tags),
                "replaced": o.replaced,
            }
            for o in outcome.indices
        ],
        "duration_ms": outcome.duration_ms,
    }


def _flag(request: Request, name: str) -> bool:
    return request.query_params.get(name, "").lower() == "true"


def create_app(
    indexer: Optional[Indexer] = None,
    client: Optional[DocumentStore] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Create the webhook application.

    Args:
        indexer: Indexer to use (defaults to the settings-based wiring).
        client: Document store (defaults to a Sanity client from settings).
        settings: Settings to use (defaults to cached settings).
    """
    settings = settings or get_settings()
    indexer = indexer or build_indexer(settings)
    client = client or build_sanity_client(settings)

    app = FastAPI(title="Sanity Search Sync")
    app.state.indexer = indexer
    app.state.client = client

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "types": indexer.router.types()}

    @app.post("/webhooks/sanity")
    async def handle_sanity_webhook(request: Request) -> JSONResponse:
        """Sync the documents referenced by a Sanity webhook delivery.

        `?initialIndex=true` reindexes everything instead; add
        `&replaceAll=true` to swap each index's contents.
        """
        raw_body = await request.body()

        if settings.is_signature_required():
            signature = request.headers.get(SIGNATURE_HEADER_NAME)
            if not signature:
                return JSONResponse(
                    status_code=401,
                    content={"success": False, "message": "Missing signature header"},
                )
            if not verify_signature(raw_body, signature, settings.webhook_secret):
                return JSONResponse(
                    status_code=401,
                    content={"success": False, "message": "Invalid signature"},
                )

        if _flag(request, "initialIndex"):
            options = SyncOptions(replace_all=_flag(request, "replaceAll"))
            try:
                outcome = await indexer.reindex(client, options)
            except SyncError as e:
                logger.error("Initial indexing failed: %s", e)
                return JSONResponse(
                    status_code=500,
                    content={"success": False, "error": str(e), "phase": e.phase},
                )
            return JSONResponse(content=_summarize(outcome))

        content_type = request.headers.get("content-type", "")
        if not content_type.startswith("application/json"):
            return JSONResponse(
                status_code=400,
                content={"success": False, "message": "Bad request"},
            )

        try:
            payload: Any = json.loads(raw_body)
        except ValueError:
            logger.warning("Webhook body is not valid JSON")
            return JSONResponse(
                status_code=400,
                content={"success": False, "message": "No payload provided"},
            )

        try:
            outcome = await indexer.webhook_sync(client, payload)
        except WebhookPayloadError as e:
            logger.warning("Invalid webhook payload: %s", e)
            return JSONResponse(status_code=400, content={"success": False, "message": str(e)})
        except SyncError as e:
            logger.error("Webhook sync failed: %s", e)
            return JSONResponse(
                status_code=500,
                content={"success": False, "error": str(e), "phase": e.phase},
            )

        return JSONResponse(content=_summarize(outcome))

    return app


def main() -> None:
    """Run the webhook server."""
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level)

    logger.info("=" * 50)
    logger.info("Sanity search sync starting...")
    logger.info("  PROJECT:    %s/%s", settings.sanity_project_id, settings.sanity_dataset)
    logger.info("  TYPES:      %s", ", ".join(settings.get_sync_types()))
    logger.info("  INDEX:      %s", settings.qdrant_collection)
    logger.info("  SIGNATURES: %s", "enabled" if settings.is_signature_required() else "disabled")
    logger.info("  EXPANSION:  %s", settings.expansion_enabled)
    logger.info("=" * 50)

    uvicorn.run(create_app(settings=settings), host=settings.app_host, port=settings.app_port)


if __name__ == "__main__":
    main()
