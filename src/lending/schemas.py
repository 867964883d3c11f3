from pydantic import BaseModel, Field, constr
from datetime import date, datetime
from decimal import Decimal

class BookIn(BaseModel):
    id: constr(strip_whitespace=True, min_length=1)
    title: str
    author: str
    isbn: str = ""
    publication_year: int | None = None
    category: str | None = None
    total_copies: int = Field(default=1, ge=0)

class BookUpdate(BaseModel):
    title: str | None = None
    author: str | None = None
    isbn: str | None = None
    publication_year: int | None = None
    category: str | None = None
    total_copies: int | None = None
    available_copies: int | None = None

class BookOut(BaseModel):
    id: str
    title: str
    author: str
    isbn: str
    publication_year: int | None
    category: str | None
    copies_total: int
    copies_available: int
    active_loan_ids: list[str] = []
    reservations: list[str] = []

class ReserveIn(BaseModel):
    user_id: str

class UserIn(BaseModel):
    id: constr(strip_whitespace=True, min_length=1)
    name: str
    email: str
    username: str | None = None
    phone: str | None = None
    role: str = "MEMBER"
    borrow_limit: int | None = Field(default=None, ge=0)

class UserUpdate(BaseModel):
    name: str | None = None
    email: str | None = None
    username: str | None = None
    phone: str | None = None
    role: str | None = None
    active: bool | None = None
    borrow_limit: int | None = Field(default=None, ge=0)

class UserOut(BaseModel):
    id: str
    name: str
    email: str
    username: str | None
    phone: str | None
    role: str
    active: bool
    borrow_limit: int | None
    borrowed_count: int
    total_loans: int

class LoanIn(BaseModel):
    user_id: str
    book_id: str
    loan_id: str | None = None
    due_date: datetime | None = None
    notes: str = ""

class LoanOut(BaseModel):
    id: str
    user_id: str
    book_id: str
    loan_date: datetime
    due_date: datetime
    return_date: datetime | None
    status: str
    fine_amount: Decimal
    notes: str

class ExtendIn(BaseModel):
    days: int

class LostIn(BaseModel):
    fine: Decimal = Field(ge=0)

class FineOut(BaseModel):
    loan_id: str
    fine_amount: Decimal
    detail: str

class RequestIn(BaseModel):
    username: str
    book_id: str
    desired_return_date: date

class DecisionIn(BaseModel):
    admin_id: str
    reason: str | None = None

class RequestOut(BaseModel):
    id: str
    username: str
    user_id: str | None
    book_id: str
    request_date: date
    desired_return_date: date
    status: str
    decided_by: str | None
    decided_at: datetime | None
    loan_id: str | None
    notes: str

class StatsOut(BaseModel):
    books: int
    total_copies: int
    available_copies: int
    users: int
    active_loans: int
    overdue_loans: int
    pending_requests: int
    total_fines: Decimal
