from pydantic import BaseModel, ConfigDict, Field, conint
from typing import Literal
import datetime

from .models import INT_MAX, INT_MIN

# Integers the database columns can hold
ColumnInt = conint(ge=INT_MIN, le=INT_MAX)
RowId = conint(ge=1, le=INT_MAX)

# --- Auth ---

class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

class LoginRequest(BaseModel):
    # Missing credentials are rejected as a failed login, not a malformed body
    email: str = ""
    password: str = ""

class UserRead(BaseModel):
    id: int
    username: str
    email: str
    model_config = ConfigDict(from_attributes=True)

class LoginResponse(BaseModel):
    token: str
    user: UserRead

class CreatedResponse(BaseModel):
    message: str
    id: int

class MessageResponse(BaseModel):
    message: str

# --- Items ---

class ItemBase(BaseModel):
    name: str = Field(..., min_length=1)
    sku: str = Field(..., min_length=1)
    category: str = ""
    quantity: ColumnInt = 0 # No floor, may be negative
    min_stock: ColumnInt = 0
    price: float = Field(0.0, ge=0)
    supplier: str = ""

class ItemCreate(ItemBase):
    pass

class ItemUpdate(ItemBase):
    # Full replacement: every field is resent, omitted optionals fall back to defaults
    pass

class ItemRead(ItemBase):
    # Stored values are not re-checked against the request bounds
    quantity: int
    min_stock: int
    id: int
    user_id: int
    created_at: datetime.datetime
    updated_at: datetime.datetime
    model_config = ConfigDict(from_attributes=True)

# --- Transactions ---

class TransactionCreate(BaseModel):
    item_id: RowId
    type: Literal["in", "out"]
    quantity: conint(gt=0, le=INT_MAX, strict=True) # Positive integer magnitude
    notes: str | None = None

class TransactionRead(BaseModel):
    id: int
    item_id: int
    type: str
    quantity: int
    notes: str
    user_id: int
    created_at: datetime.datetime
    item_name: str
    sku: str

# --- Dashboard ---

class ItemTotals(BaseModel):
    total_items: int
    total_quantity: int

class DashboardStats(BaseModel):
    items: ItemTotals
    total_value: float
    low_stock: int
