"""
Equipment Rental Schemas

The whole application state is one `AppSnapshot` document. Every other model
here is embedded in it; the core receives a snapshot and returns a new one.
"""
from pydantic import BaseModel, Field, EmailStr
from typing import Optional, List, Literal
from datetime import datetime

Periodicity = Literal['weekly', 'monthly']
Currency = Literal['SAR', 'EGP']
DiscountType = Literal['fixed', 'percentage']
QuotationStatus = Literal['pending', 'permit', 'converted']
RentalStatus = Literal['active', 'closed']
CreationMode = Literal['quotation', 'permit']

# Catalog
class InventoryItem(BaseModel):
    id: str
    name: str
    category: str = "General"
    rate_per_unit: float = Field(0, ge=0, description="Rate per billing period")
    available_qty: int = Field(0, ge=0)

# Document parts
class LineItem(BaseModel):
    id: str
    item_id: str = Field(..., description="Referenced inventory item id")
    name: str = Field(..., description="Snapshot of item name at creation")
    original_qty: int = Field(..., ge=0)
    returned_qty: int = Field(0, ge=0)
    current_qty: int = Field(..., ge=0)
    held_qty: int = Field(0, ge=0, description="Stock actually taken from the catalog for this line")
    rate: float = Field(..., ge=0, description="Rate snapshotted at creation")
    start_date: datetime

class Payment(BaseModel):
    id: str
    amount: float
    date: datetime

class ReturnLog(BaseModel):
    id: str
    item_id: str
    item_name: str
    qty: int
    date: datetime

# Documents
class Quotation(BaseModel):
    id: str
    customer_name: str
    customer_phone: str = ""
    customer_address: Optional[str] = None
    items: List[LineItem] = []
    date: datetime
    notes: str = ""
    discount_value: float = Field(0, ge=0)
    discount_type: DiscountType = 'fixed'
    security_deposit: float = Field(0, ge=0)
    status: QuotationStatus = 'pending'
    stock_committed: bool = False
    return_logs: List[ReturnLog] = []
    converted_to: Optional[str] = None

class Rental(BaseModel):
    id: str
    customer_name: str
    customer_phone: str = ""
    customer_address: Optional[str] = None
    items: List[LineItem] = []
    return_logs: List[ReturnLog] = []
    start_date: datetime
    status: RentalStatus = 'active'
    discount_value: float = Field(0, ge=0)
    discount_type: DiscountType = 'fixed'
    security_deposit: float = Field(0, ge=0)
    opening_balance: float = 0
    payments: List[Payment] = []
    notes: str = ""
    source_quotation: Optional[str] = None

class Expense(BaseModel):
    id: str
    description: str
    amount: float = Field(..., gt=0)
    date: datetime
    category: str = "General"

# Settings
class CompanySettings(BaseModel):
    name: str = "Equipment Rentals"
    phone: str = ""
    address: str = ""
    email: Optional[EmailStr] = None
    header_text: str = ""
    footer_text: str = ""
    terms: str = ""

class SystemSettings(BaseModel):
    currency: Currency = 'SAR'
    rental_system: Periodicity = 'weekly'
    next_invoice_number: int = Field(1001, ge=1)

class AppSnapshot(BaseModel):
    items: List[InventoryItem] = []
    quotations: List[Quotation] = []
    rentals: List[Rental] = []
    archived_rentals: List[Rental] = []
    expenses: List[Expense] = []
    company_settings: CompanySettings = CompanySettings()
    system_settings: SystemSettings = SystemSettings()

# Inputs from the collaborating form layer
class LineDraft(BaseModel):
    item_id: str
    qty: int = Field(..., ge=1)
    rate: Optional[float] = Field(None, ge=0, description="Custom rate, defaults to catalog rate")

class QuotationDraft(BaseModel):
    customer_name: str = ""
    customer_phone: str = ""
    customer_address: Optional[str] = None
    lines: List[LineDraft] = []
    notes: str = ""
    discount_value: float = Field(0, ge=0)
    discount_type: DiscountType = 'fixed'
    security_deposit: float = Field(0, ge=0)

class RentalDraft(QuotationDraft):
    opening_balance: float = 0

# Derived
class Settlement(BaseModel):
    subtotal: int
    discount: int
    deposit: int
    opening_balance: int
    total_due: int
    total_paid: int
    remaining: int
