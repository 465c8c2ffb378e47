import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import user_id_from_header
from config import get_settings
from database import SessionLocal
from errors import DomainError
from models import AssetCategory, CategoryType, LiabilityCategory
from recurrence import UpcomingPayment
from schemas import (
    AssetIn,
    AssetOut,
    AssetUpdate,
    CustomCategoryTemplateIn,
    CustomCategoryTemplateOut,
    CustomCategoryTemplateUpdate,
    LiabilityIn,
    LiabilityOut,
    LiabilityUpdate,
    RecordOccurrenceIn,
    RecurringScheduleIn,
    RecurringScheduleOut,
    RecurringScheduleUpdate,
    TransactionIn,
    TransactionOut,
    TransactionUpdate,
)
from services import (
    AssetService,
    CustomCategoryTemplateService,
    LiabilityService,
    Page,
    RecurringScheduleService,
    TransactionService,
)


settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Personal Finance Ledger")

API = "/api/v1"
MAX_PROJECTION_MONTHS = 60


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_user_id(authorization: Optional[str] = Header(default=None)) -> int:
    return user_id_from_header(authorization)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def envelope(
    message: str,
    data: object = None,
    *,
    status_code: int = 200,
    success: bool = True,
    error: Optional[str] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            {
                "success": success,
                "message": message,
                "data": data,
                "error": error,
                "timestamp": _timestamp(),
            }
        ),
    )


@app.exception_handler(DomainError)
def domain_error_handler(request: Request, exc: DomainError):
    logger.warning(
        f"request_rejected: {request.method} {request.url.path} "
        f"status={exc.status_code} reason={exc}"
    )
    return envelope(str(exc), status_code=exc.status_code, success=False)


@app.exception_handler(RequestValidationError)
def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    return envelope(
        "Validation error",
        {"errors": errors},
        status_code=422,
        success=False,
    )


@app.exception_handler(StarletteHTTPException)
def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code == 404 and message == "Not Found":
        message = f"Route {request.url.path} not found"
    return envelope(message, status_code=exc.status_code, success=False)


@app.exception_handler(Exception)
def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"unexpected_error: {request.method} {request.url.path}")
    return envelope(
        "An unexpected error occurred",
        status_code=500,
        success=False,
        error=str(exc) if settings.debug else None,
    )


def _dump(schema, obj) -> dict:
    return schema.model_validate(obj).model_dump(mode="json")


def _page(schema, page: Page, key: str) -> dict:
    return {
        key: [_dump(schema, item) for item in page.items],
        "total": page.total,
        "page": page.page,
        "limit": page.limit,
        "pages": page.pages,
    }


def _upcoming(items: list[UpcomingPayment]) -> list[dict]:
    return [
        {
            "date": item.date.isoformat(),
            "amount_cents": item.amount_cents,
            "status": item.status.value,
            "transaction_id": item.transaction_id,
            "schedule": _dump(RecurringScheduleOut, item.schedule),
        }
        for item in items
    ]


def _months(months: int) -> int:
    return min(max(months, 1), MAX_PROJECTION_MONTHS)


@app.get(f"{API}/health")
def health():
    return envelope("OK", {"status": "ok"})


# Custom category templates


@app.get(f"{API}/custom-categories")
def list_custom_categories(
    category_type: Optional[CategoryType] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    templates = CustomCategoryTemplateService(db, user_id).list_templates(category_type)
    return envelope(
        "Custom categories retrieved successfully",
        {"templates": [_dump(CustomCategoryTemplateOut, t) for t in templates]},
    )


@app.post(f"{API}/custom-categories")
def create_custom_category(
    payload: CustomCategoryTemplateIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    template = CustomCategoryTemplateService(db, user_id).create(payload)
    return envelope(
        "Custom category created successfully",
        {"template": _dump(CustomCategoryTemplateOut, template)},
        status_code=201,
    )


@app.get(f"{API}/custom-categories/{{template_id}}")
def get_custom_category(
    template_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    template = CustomCategoryTemplateService(db, user_id).get(template_id)
    return envelope(
        "Custom category retrieved successfully",
        {"template": _dump(CustomCategoryTemplateOut, template)},
    )


@app.patch(f"{API}/custom-categories/{{template_id}}")
def update_custom_category(
    template_id: int,
    payload: CustomCategoryTemplateUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    template = CustomCategoryTemplateService(db, user_id).update(template_id, payload)
    return envelope(
        "Custom category updated successfully",
        {"template": _dump(CustomCategoryTemplateOut, template)},
    )


@app.delete(f"{API}/custom-categories/{{template_id}}")
def delete_custom_category(
    template_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    CustomCategoryTemplateService(db, user_id).delete(template_id)
    return envelope("Custom category deleted successfully")


@app.get(f"{API}/custom-categories/{{template_id}}/fields")
def hydrate_custom_category_fields(
    template_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    fields = CustomCategoryTemplateService(db, user_id).hydrate_fields(template_id)
    return envelope("Custom fields retrieved successfully", {"fields": fields})


# Assets


@app.get(f"{API}/assets")
def list_assets(
    page: int = 1,
    limit: int = 50,
    category: Optional[AssetCategory] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    result = AssetService(db, user_id).list(page, limit, category)
    return envelope("Assets retrieved successfully", _page(AssetOut, result, "assets"))


@app.post(f"{API}/assets")
def create_asset(
    payload: AssetIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    asset = AssetService(db, user_id).create(payload)
    return envelope(
        "Asset created successfully",
        {"asset": _dump(AssetOut, asset)},
        status_code=201,
    )


@app.get(f"{API}/assets/summary")
def asset_summary(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return envelope(
        "Asset summary retrieved successfully", AssetService(db, user_id).summary()
    )


@app.get(f"{API}/assets/{{asset_id}}")
def get_asset(
    asset_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    asset = AssetService(db, user_id).get(asset_id)
    return envelope("Asset retrieved successfully", {"asset": _dump(AssetOut, asset)})


@app.patch(f"{API}/assets/{{asset_id}}")
def update_asset(
    asset_id: int,
    payload: AssetUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    asset = AssetService(db, user_id).update(asset_id, payload)
    return envelope("Asset updated successfully", {"asset": _dump(AssetOut, asset)})


@app.delete(f"{API}/assets/{{asset_id}}")
def delete_asset(
    asset_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    AssetService(db, user_id).delete(asset_id)
    return envelope("Asset deleted successfully")


@app.get(f"{API}/assets/{{asset_id}}/upcoming-payments")
def asset_upcoming_payments(
    asset_id: int,
    months: int = 6,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    items = RecurringScheduleService(db, user_id).upcoming(
        asset_id=asset_id, months=_months(months)
    )
    return envelope("Upcoming payments retrieved successfully", {"payments": _upcoming(items)})


# Liabilities


@app.get(f"{API}/liabilities")
def list_liabilities(
    page: int = 1,
    limit: int = 50,
    category: Optional[LiabilityCategory] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    result = LiabilityService(db, user_id).list(page, limit, category)
    return envelope(
        "Liabilities retrieved successfully",
        _page(LiabilityOut, result, "liabilities"),
    )


@app.post(f"{API}/liabilities")
def create_liability(
    payload: LiabilityIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    liability = LiabilityService(db, user_id).create(payload)
    return envelope(
        "Liability created successfully",
        {"liability": _dump(LiabilityOut, liability)},
        status_code=201,
    )


@app.get(f"{API}/liabilities/summary")
def liability_summary(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return envelope(
        "Liability summary retrieved successfully",
        LiabilityService(db, user_id).summary(),
    )


@app.get(f"{API}/liabilities/{{liability_id}}")
def get_liability(
    liability_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    liability = LiabilityService(db, user_id).get(liability_id)
    return envelope(
        "Liability retrieved successfully",
        {"liability": _dump(LiabilityOut, liability)},
    )


@app.patch(f"{API}/liabilities/{{liability_id}}")
def update_liability(
    liability_id: int,
    payload: LiabilityUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    liability = LiabilityService(db, user_id).update(liability_id, payload)
    return envelope(
        "Liability updated successfully",
        {"liability": _dump(LiabilityOut, liability)},
    )


@app.delete(f"{API}/liabilities/{{liability_id}}")
def delete_liability(
    liability_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    LiabilityService(db, user_id).delete(liability_id)
    return envelope("Liability deleted successfully")


@app.get(f"{API}/liabilities/{{liability_id}}/upcoming-payments")
def liability_upcoming_payments(
    liability_id: int,
    months: int = 6,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    items = RecurringScheduleService(db, user_id).upcoming(
        liability_id=liability_id, months=_months(months)
    )
    return envelope("Upcoming payments retrieved successfully", {"payments": _upcoming(items)})


# Transactions


@app.get(f"{API}/transactions")
def list_transactions(
    asset_id: Optional[int] = None,
    liability_id: Optional[int] = None,
    page: int = 1,
    limit: int = 50,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    result = TransactionService(db, user_id).list(asset_id, liability_id, page, limit)
    return envelope(
        "Transactions retrieved successfully",
        _page(TransactionOut, result, "transactions"),
    )


@app.post(f"{API}/transactions")
def create_transaction(
    payload: TransactionIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    txn = TransactionService(db, user_id).create(payload)
    return envelope(
        "Transaction created successfully",
        {"transaction": _dump(TransactionOut, txn)},
        status_code=201,
    )


@app.get(f"{API}/transactions/{{transaction_id}}")
def get_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    txn = TransactionService(db, user_id).get(transaction_id)
    return envelope(
        "Transaction retrieved successfully",
        {"transaction": _dump(TransactionOut, txn)},
    )


@app.patch(f"{API}/transactions/{{transaction_id}}")
def update_transaction(
    transaction_id: int,
    payload: TransactionUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    txn = TransactionService(db, user_id).update(transaction_id, payload)
    return envelope(
        "Transaction updated successfully",
        {"transaction": _dump(TransactionOut, txn)},
    )


@app.delete(f"{API}/transactions/{{transaction_id}}")
def delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    TransactionService(db, user_id).delete(transaction_id)
    return envelope("Transaction deleted successfully")


# Recurring schedules


@app.get(f"{API}/recurring-schedules")
def list_recurring_schedules(
    asset_id: Optional[int] = None,
    liability_id: Optional[int] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    schedules = RecurringScheduleService(db, user_id).list(asset_id, liability_id)
    return envelope(
        "Schedules retrieved successfully",
        {"schedules": [_dump(RecurringScheduleOut, s) for s in schedules]},
    )


@app.post(f"{API}/recurring-schedules")
def create_recurring_schedule(
    payload: RecurringScheduleIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    schedule = RecurringScheduleService(db, user_id).create(payload)
    return envelope(
        "Schedule created successfully",
        {"schedule": _dump(RecurringScheduleOut, schedule)},
        status_code=201,
    )


@app.get(f"{API}/recurring-schedules/{{schedule_id}}")
def get_recurring_schedule(
    schedule_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    schedule = RecurringScheduleService(db, user_id).get(schedule_id)
    return envelope(
        "Schedule retrieved successfully",
        {"schedule": _dump(RecurringScheduleOut, schedule)},
    )


@app.patch(f"{API}/recurring-schedules/{{schedule_id}}")
def update_recurring_schedule(
    schedule_id: int,
    payload: RecurringScheduleUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    schedule = RecurringScheduleService(db, user_id).update(schedule_id, payload)
    return envelope(
        "Schedule updated successfully",
        {"schedule": _dump(RecurringScheduleOut, schedule)},
    )


@app.delete(f"{API}/recurring-schedules/{{schedule_id}}")
def delete_recurring_schedule(
    schedule_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    RecurringScheduleService(db, user_id).delete(schedule_id)
    return envelope("Schedule deleted successfully")


@app.post(f"{API}/recurring-schedules/{{schedule_id}}/deactivate")
def deactivate_recurring_schedule(
    schedule_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    schedule = RecurringScheduleService(db, user_id).deactivate(schedule_id)
    return envelope(
        "Schedule deactivated successfully",
        {"schedule": _dump(RecurringScheduleOut, schedule)},
    )


@app.post(f"{API}/recurring-schedules/{{schedule_id}}/record")
def record_recurring_occurrence(
    schedule_id: int,
    payload: RecordOccurrenceIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    txn = RecurringScheduleService(db, user_id).record_occurrence(schedule_id, payload)
    return envelope(
        "Scheduled payment recorded successfully",
        {"transaction": _dump(TransactionOut, txn)},
        status_code=201,
    )


@app.get(f"{API}/upcoming-payments")
def upcoming_payments(
    asset_id: Optional[int] = None,
    liability_id: Optional[int] = None,
    months: int = 12,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    items = RecurringScheduleService(db, user_id).upcoming(
        asset_id=asset_id, liability_id=liability_id, months=_months(months)
    )
    return envelope("Upcoming payments retrieved successfully", {"payments": _upcoming(items)})


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)
