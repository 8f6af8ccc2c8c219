"""
Receipt Ledger - Main FastAPI Application

PURPOSE: FastAPI routes, endpoints, and application setup
SCOPE: Thin HTTP transport over the coordinator, master data and expense log
DEPENDENCIES: FastAPI, all receipt_ledger modules
"""

import logging
import os
import uuid
from dataclasses import dataclass
from typing import Optional

import aiofiles
from fastapi import FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse

from .config import AppConfig, config
from .coordinator import Coordinator
from .database import MasterDataRepository
from .drafts import DraftStore
from .errors import (AlreadyOpen, DuplicateEvent, LedgerError, NotFound, PersistenceError,
                     ValidationError, log_error)
from .managers import ExpenseManager, MasterDataManager
from .models import DatasetKind, ItemStatus, MasterData
from .analyzer import OCRAnalyzer
from .overlay import OverlayResolver
from .queue_store import ExpenseQueueStore, MasterQueueStore
from .registry import TransactionRegistry
from .validators import sanitize_form_data
from .views import render_master_page

logger = logging.getLogger(__name__)

_STATUS_CODES = (
    (NotFound, 404),
    (DuplicateEvent, 409),
    (AlreadyOpen, 409),
    (ValidationError, 400),
    (PersistenceError, 503),
)


@dataclass
class Services:
    """Service instances shared by the routes of one app."""
    config: AppConfig
    repository: MasterDataRepository
    master_queue: MasterQueueStore
    expense_queue: ExpenseQueueStore
    overlay: OverlayResolver
    masters: MasterDataManager
    expenses: ExpenseManager
    coordinator: Coordinator


def build_services(app_config: AppConfig, analyzer=None) -> Services:
    master_queue = MasterQueueStore(app_config.master_queue_path)
    expense_queue = ExpenseQueueStore(app_config.expense_queue_path)
    # Replaced with the seeded lists on startup
    overlay = OverlayResolver(MasterData(), master_queue)
    expenses = ExpenseManager(expense_queue)
    coordinator = Coordinator(
        registry=TransactionRegistry(),
        drafts=DraftStore(),
        overlay=overlay,
        expenses=expenses,
        analyzer=analyzer or OCRAnalyzer(app_config.OCR_LANGUAGES),
        timeout=app_config.ANALYSIS_TIMEOUT,
        default_user_id=app_config.DEFAULT_USER_ID,
        default_category_id=app_config.DEFAULT_CATEGORY_ID,
    )
    return Services(
        config=app_config,
        repository=MasterDataRepository(app_config.MASTER_DB_FILE),
        master_queue=master_queue,
        expense_queue=expense_queue,
        overlay=overlay,
        masters=MasterDataManager(master_queue, overlay),
        expenses=expenses,
        coordinator=coordinator,
    )


def _parse_kind(kind: str) -> DatasetKind:
    try:
        return DatasetKind(kind)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown master list: {kind}")


def create_app(app_config: Optional[AppConfig] = None, analyzer=None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app_config = app_config or config
    services = build_services(app_config, analyzer)

    app = FastAPI(title="Receipt Ledger")
    app.state.services = services

    @app.on_event("startup")
    async def startup_event():
        """Load the base master lists and both queues."""
        await services.repository.initialize_database()
        services.overlay.base = await services.repository.load_master_data()
        logger.info("Master data loaded successfully.")

        for store in (services.master_queue, services.expense_queue):
            try:
                await store.load()
            except PersistenceError as e:
                # Start with an empty queue rather than refusing to boot
                log_error(e)

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        status_code = 500
        for error_type, code in _STATUS_CODES:
            if isinstance(exc, error_type):
                status_code = code
                break
        if status_code >= 500:
            log_error(exc)
        content = {"detail": exc.message}
        if isinstance(exc, ValidationError):
            content["errors"] = exc.errors
        return JSONResponse(status_code=status_code, content=content)

    # ========================================================================
    # RECEIPT ENDPOINTS
    # ========================================================================

    @app.post("/receipts")
    async def upload_receipt(file: UploadFile = File(...), event_id: str = Form('')):
        """Store the uploaded image and start analysing it in the background."""
        if not (file.content_type or '').startswith('image/'):
            raise HTTPException(status_code=400, detail="Only image uploads are accepted")

        event_id = event_id.strip() or str(uuid.uuid4())
        os.makedirs(app_config.TEMP_IMAGE_DIR, exist_ok=True)
        filename = os.path.basename(file.filename or 'receipt')
        asset_ref = os.path.join(app_config.TEMP_IMAGE_DIR, f"{event_id}_{filename}")

        async with aiofiles.open(asset_ref, mode='wb') as f:
            await f.write(await file.read())

        await services.coordinator.start(event_id, asset_ref)
        logger.info(f"Receipt received: {event_id} ({filename})")
        return {"event_id": event_id, "state": services.coordinator.state(event_id).value}

    @app.post("/receipts/{event_id}/input")
    async def submit_input(
        event_id: str,
        category_id: str = Form(''),
        category_keyword: str = Form(''),
        group_keyword: str = Form(''),
        user_name: str = Form(''),
        price: str = Form(''),
    ):
        """Join the user's answers with the analysis result."""
        user_input = sanitize_form_data({
            'category_id': category_id,
            'category_keyword': category_keyword,
            'group_keyword': group_keyword,
            'user_name': user_name,
            'price': price,
        })
        outcome = await services.coordinator.submit_input(event_id, user_input)
        return {
            "event_id": event_id,
            "state": outcome.state.value,
            "message": outcome.message,
            "draft": outcome.draft.to_dict() if outcome.draft else None,
            "view": outcome.view.to_dict() if outcome.view else None,
        }

    # ========================================================================
    # DRAFT ENDPOINTS
    # ========================================================================

    @app.get("/drafts/{event_id}")
    async def get_draft(event_id: str):
        draft = services.coordinator.drafts.read(event_id)
        return {
            "draft": draft.to_dict(),
            "view": services.coordinator.view(event_id).to_dict(),
            "state": services.coordinator.state(event_id).value,
        }

    @app.patch("/drafts/{event_id}")
    async def edit_draft(event_id: str, field: str = Form(...), value: str = Form('')):
        """Replace one field of the draft."""
        view = services.coordinator.edit(event_id, field.strip(), value)
        return {"event_id": event_id, "view": view.to_dict()}

    @app.post("/drafts/{event_id}/confirm")
    async def confirm_draft(event_id: str):
        """Commit the draft to the expense queue."""
        outcome = await services.coordinator.commit(event_id)
        response = {
            "expense": outcome.expense.to_dict(),
            "queue_length": outcome.queue_length,
            "remainder": None,
        }
        if outcome.remainder is not None:
            response["remainder"] = {
                "draft": outcome.remainder.to_dict(),
                "view": outcome.remainder_view.to_dict(),
            }
        return response

    @app.delete("/drafts/{event_id}")
    async def cancel_draft(event_id: str):
        services.coordinator.cancel(event_id)
        return {"message": "キャンセルしました。"}

    # ========================================================================
    # MASTER DATA ENDPOINTS
    # ========================================================================

    @app.get("/master/{kind}")
    async def list_master(kind: str, page: int = Query(0, ge=0)):
        dataset = _parse_kind(kind)
        entries, total_pages = services.overlay.page(dataset, page, app_config.ITEMS_PER_PAGE)
        return render_master_page(dataset, entries, min(page, total_pages - 1), total_pages)

    @app.post("/master/{kind}")
    async def add_master_item(kind: str, name: str = Form(...), type_name: str = Form('')):
        dataset = _parse_kind(kind)
        item = await services.masters.add_item(dataset, name, type_name or None)
        return {"message": f"{dataset.label}「{item.name}」を追加しました。", "item": item.to_dict()}

    @app.patch("/master/items/{item_id}/status")
    async def update_master_status(item_id: str, status: str = Form(...)):
        try:
            new_status = ItemStatus(status)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown status: {status}")
        if new_status == ItemStatus.SYNCED:
            item = await services.masters.mark_synced(item_id)
        elif new_status == ItemStatus.ERROR:
            item = await services.masters.mark_error(item_id)
        else:
            item = await services.master_queue.update_status(item_id, new_status)
        return {"item": item.to_dict()}

    @app.delete("/master/items/{item_id}")
    async def delete_master_item(item_id: str):
        item = await services.masters.remove_item(item_id)
        return {"message": f"Item {item.id} deleted successfully"}

    # ========================================================================
    # EXPENSE ENDPOINTS
    # ========================================================================

    @app.get("/expenses")
    async def get_expenses():
        return [expense.to_dict() for expense in services.expenses.list_expenses()]

    @app.get("/health")
    async def health_check():
        return {
            "status": "ok",
            "open_transactions": len(services.coordinator.registry),
            "open_drafts": len(services.coordinator.drafts),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("receipt_ledger.app:app", host="0.0.0.0", port=8000)
