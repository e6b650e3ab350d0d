import logging
import threading
from datetime import datetime
from typing import Literal, Optional
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field

import billing
import catalog
import database
import lifecycle
from config import settings
from exceptions import RentalError
from schemas import AppSnapshot, QuotationDraft, RentalDraft, Settlement

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.PROJECT_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RentalError)
async def rental_error_handler(request: Request, exc: RentalError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Utility
# All writes go through one lock: stock deductions are not safe to interleave.
_writer = threading.Lock()

def ensure_db():
    if database.db is None:
        raise HTTPException(status_code=500, detail="Database not configured")

def current() -> AppSnapshot:
    ensure_db()
    return database.load_snapshot()

def mutate(operation, *args, **kwargs) -> AppSnapshot:
    ensure_db()
    with _writer:
        snapshot = database.load_snapshot()
        updated = operation(snapshot, *args, **kwargs)
        if updated is not snapshot:
            database.save_snapshot(updated)
        return updated

def find_or_404(documents, doc_id: str, label: str):
    for doc in documents:
        if doc.id == doc_id:
            return doc
    raise HTTPException(status_code=404, detail=f"{label} not found")

@app.get("/")
def read_root():
    return {"message": "Equipment Rental Backend Running"}

# Seed the demo catalog on an empty database
@app.post("/seed")
def seed():
    def add_demo_items(snapshot: AppSnapshot) -> AppSnapshot:
        if snapshot.items:
            return snapshot
        return snapshot.model_copy(update={"items": list(database.DEMO_ITEMS)})
    snapshot = mutate(add_demo_items)
    return {"status": "ok", "items": len(snapshot.items)}

@app.get("/snapshot")
def get_snapshot():
    return current()

# Dashboard summary
@app.get("/dashboard")
def dashboard():
    return catalog.dashboard(current())

# Inventory
@app.get("/items")
def list_items(q: Optional[str] = None):
    return catalog.list_items(current(), search=q)

class ItemCreate(BaseModel):
    name: str
    category: str = "General"
    rate_per_unit: float = Field(0, ge=0)
    available_qty: int = Field(0, ge=0)

@app.post("/items")
def create_item(payload: ItemCreate):
    snapshot = mutate(catalog.add_item, payload.name, payload.category, payload.rate_per_unit, payload.available_qty)
    return snapshot.items[-1]

class ItemUpdate(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    rate_per_unit: Optional[float] = None
    available_qty: Optional[int] = None

@app.patch("/items/{item_id}")
def update_item(item_id: str, payload: ItemUpdate):
    snapshot = mutate(catalog.update_item, item_id, **payload.model_dump())
    return find_or_404(snapshot.items, item_id, "Item")

@app.delete("/items/{item_id}")
def delete_item(item_id: str):
    mutate(catalog.delete_item, item_id)
    return {"deleted": True}

# Quotations and permits
@app.get("/quotations")
def list_quotations(status: Optional[str] = None):
    quotes = current().quotations
    if status:
        quotes = [q for q in quotes if q.status == status]
    return quotes

class QuotationCreate(QuotationDraft):
    mode: Literal['quotation', 'permit'] = 'quotation'

@app.post("/quotations")
def create_quotation(payload: QuotationCreate):
    draft = QuotationDraft(**payload.model_dump(exclude={"mode"}))
    snapshot = mutate(lifecycle.create_quotation, draft, payload.mode)
    return snapshot.quotations[0]

@app.get("/quotations/{quotation_id}")
def get_quotation(quotation_id: str):
    return find_or_404(current().quotations, quotation_id, "Quotation")

class StatusPayload(BaseModel):
    action: str

@app.post("/quotations/{quotation_id}/action")
def quotation_action(quotation_id: str, payload: StatusPayload):
    if payload.action == "permit":
        snapshot = mutate(lifecycle.issue_permit, quotation_id)
    elif payload.action == "convert":
        snapshot = mutate(lifecycle.convert_to_contract, quotation_id)
    elif payload.action == "archive":
        mutate(lifecycle.archive_quotation, quotation_id)
        return {"id": quotation_id, "archived": True}
    else:
        raise HTTPException(status_code=400, detail=f"Unknown action: {payload.action}")
    quote = find_or_404(snapshot.quotations, quotation_id, "Quotation")
    return {"id": quote.id, "status": quote.status, "contract_id": quote.converted_to}

@app.delete("/quotations/{quotation_id}")
def delete_quotation(quotation_id: str):
    mutate(lifecycle.delete_quotation, quotation_id)
    return {"deleted": True}

class ReturnPayload(BaseModel):
    line_id: str
    qty: int

@app.post("/quotations/{quotation_id}/returns")
def return_quotation_line(quotation_id: str, payload: ReturnPayload):
    snapshot = mutate(lifecycle.return_quotation_line, quotation_id, payload.line_id, payload.qty)
    return find_or_404(snapshot.quotations, quotation_id, "Quotation")

class DiscountPayload(BaseModel):
    value: float
    type: Literal['fixed', 'percentage'] = 'fixed'

@app.post("/quotations/{quotation_id}/discount")
def quotation_discount(quotation_id: str, payload: DiscountPayload):
    snapshot = mutate(lifecycle.set_discount, 'quotation', quotation_id, payload.value, payload.type)
    return find_or_404(snapshot.quotations, quotation_id, "Quotation")

@app.get("/quotations/{quotation_id}/settlement", response_model=Settlement)
def quotation_settlement(quotation_id: str):
    snapshot = current()
    quote = find_or_404(snapshot.quotations, quotation_id, "Quotation")
    return billing.settle(quote, None, snapshot.system_settings.rental_system)

# Rental contracts
@app.get("/rentals")
def list_rentals(q: Optional[str] = None):
    return catalog.list_rentals(current(), search=q)

@app.post("/rentals")
def create_rental(payload: RentalDraft):
    snapshot = mutate(lifecycle.create_rental, payload)
    return snapshot.rentals[0]

@app.get("/rentals/{rental_id}")
def get_rental(rental_id: str):
    return find_or_404(current().rentals, rental_id, "Contract")

@app.post("/rentals/{rental_id}/action")
def rental_action(rental_id: str, payload: StatusPayload):
    if payload.action == "close":
        snapshot = mutate(lifecycle.close_rental, rental_id)
        rental = find_or_404(snapshot.rentals, rental_id, "Contract")
        return {"id": rental.id, "status": rental.status}
    if payload.action == "archive":
        mutate(lifecycle.archive_rental, rental_id)
        return {"id": rental_id, "archived": True}
    raise HTTPException(status_code=400, detail=f"Unknown action: {payload.action}")

class AddLinePayload(BaseModel):
    item_id: str
    qty: int
    rate: Optional[float] = None

@app.post("/rentals/{rental_id}/items")
def add_rental_line(rental_id: str, payload: AddLinePayload):
    snapshot = mutate(lifecycle.add_rental_line, rental_id, payload.item_id, payload.qty, payload.rate)
    return find_or_404(snapshot.rentals, rental_id, "Contract")

@app.post("/rentals/{rental_id}/returns")
def return_rental_line(rental_id: str, payload: ReturnPayload):
    snapshot = mutate(lifecycle.return_rental_line, rental_id, payload.line_id, payload.qty)
    return find_or_404(snapshot.rentals, rental_id, "Contract")

class PaymentPayload(BaseModel):
    amount: float

@app.post("/rentals/{rental_id}/payments")
def record_payment(rental_id: str, payload: PaymentPayload):
    snapshot = mutate(lifecycle.record_payment, rental_id, payload.amount)
    rental = find_or_404(snapshot.rentals, rental_id, "Contract")
    return rental.payments[-1]

@app.post("/rentals/{rental_id}/discount")
def rental_discount(rental_id: str, payload: DiscountPayload):
    snapshot = mutate(lifecycle.set_discount, 'rental', rental_id, payload.value, payload.type)
    return find_or_404(snapshot.rentals, rental_id, "Contract")

@app.get("/rentals/{rental_id}/settlement", response_model=Settlement)
def rental_settlement(rental_id: str):
    snapshot = current()
    rental = find_or_404(snapshot.rentals + snapshot.archived_rentals, rental_id, "Contract")
    return billing.settle(rental, None, snapshot.system_settings.rental_system)

# Archive
@app.get("/archive")
def list_archive(q: Optional[str] = None):
    return catalog.list_archived(current(), search=q)

@app.post("/archive/{rental_id}/restore")
def restore_rental(rental_id: str):
    snapshot = mutate(lifecycle.restore_rental, rental_id)
    return find_or_404(snapshot.rentals, rental_id, "Contract")

@app.delete("/archive/{rental_id}")
def delete_archived(rental_id: str):
    mutate(catalog.delete_archived_rental, rental_id)
    return {"deleted": True}

# Expenses
@app.get("/expenses")
def list_expenses(q: Optional[str] = None):
    snapshot = current()
    return {
        "expenses": catalog.list_expenses(snapshot, search=q),
        "total": catalog.expenses_total(snapshot),
        "this_month": catalog.monthly_total(snapshot),
    }

class ExpenseCreate(BaseModel):
    description: str
    amount: float
    category: str = "General"
    date: Optional[datetime] = None

@app.post("/expenses")
def create_expense(payload: ExpenseCreate):
    snapshot = mutate(catalog.add_expense, payload.description, payload.amount, payload.category, payload.date)
    return snapshot.expenses[-1]

@app.delete("/expenses/{expense_id}")
def delete_expense(expense_id: str):
    mutate(catalog.delete_expense, expense_id)
    return {"deleted": True}

# Settings
@app.get("/settings")
def get_settings():
    snapshot = current()
    return {"system": snapshot.system_settings, "company": snapshot.company_settings}

class SystemSettingsUpdate(BaseModel):
    currency: Optional[Literal['SAR', 'EGP']] = None
    rental_system: Optional[Literal['weekly', 'monthly']] = None
    next_invoice_number: Optional[int] = None

@app.patch("/settings")
def update_settings(payload: SystemSettingsUpdate):
    return mutate(catalog.update_system_settings, **payload.model_dump()).system_settings

class CompanySettingsUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    email: Optional[EmailStr] = None
    header_text: Optional[str] = None
    footer_text: Optional[str] = None
    terms: Optional[str] = None

@app.patch("/settings/company")
def update_company(payload: CompanySettingsUpdate):
    return mutate(catalog.update_company_settings, **payload.model_dump()).company_settings

# Database probe
@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Available"
            response["database_url"] = "✅ Set" if settings.DATABASE_URL else "❌ Not Set"
            response["database_name"] = "✅ Set" if settings.DATABASE_NAME else "❌ Not Set"
            response["connection_status"] = "Connected"
            try:
                collections = database.db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
        else:
            response["database"] = "⚠️  Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"
    return response

if __name__ == "__main__":
    import uvicorn
    port = settings.PORT
    logger.info(f"Starting server on 0.0.0.0:{port}")
    uvicorn.run(app, host="0.0.0.0", port=port)
