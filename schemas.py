import datetime as dt
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from periods import MONTH_PATTERN


class Credentials(BaseModel):
    username: str = Field(..., max_length=100)
    password: str = Field(..., max_length=200)


class ProfileIn(BaseModel):
    username: str = Field(..., max_length=100)
    email: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=40)


class PasswordChangeIn(BaseModel):
    old_password: str
    new_password: str = Field(..., max_length=200)


class ProfileOut(BaseModel):
    id: int
    username: str
    email: Optional[str]
    phone: Optional[str]
    created_at: datetime
    expenses_count: int
    total_spent: int


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    color: str


class ExpenseIn(BaseModel):
    amount_cents: int = Field(..., ge=0)
    category_id: int
    description: Optional[str] = Field(default=None, max_length=200)
    date: dt.date


class ExpenseOut(BaseModel):
    id: int
    amount_cents: int
    category_id: int
    category_name: str
    category_color: str
    description: Optional[str]
    date: dt.date


class BudgetIn(BaseModel):
    category_id: int
    amount_cents: int = Field(..., ge=0)
    month: str = Field(..., pattern=MONTH_PATTERN)


class BudgetOut(BaseModel):
    id: int
    category_id: int
    category_name: str
    amount_cents: int
    month: str


class CreatedOut(BaseModel):
    id: int


class CategorySliceOut(BaseModel):
    category_id: int
    name: str
    value: int
    color: str


class DailySpendOut(BaseModel):
    date: str
    amount: int


class MonthlySummaryOut(BaseModel):
    month: str
    total_spent: int
    category_breakdown: list[CategorySliceOut]
    daily_spending: list[DailySpendOut]
