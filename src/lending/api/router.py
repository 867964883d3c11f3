from fastapi import APIRouter, Depends, HTTPException
from lending.core.library import Library
from lending.deps import get_library

from lending.schemas import (
    BookIn, BookUpdate, BookOut, ReserveIn,
    UserIn, UserUpdate, UserOut,
    LoanIn, LoanOut, ExtendIn, LostIn, FineOut,
    RequestIn, DecisionIn, RequestOut,
    StatsOut,
)

from lending import actions

router = APIRouter()

NOT_FOUND = {"NOT_FOUND"}
CONFLICT = {"DUPLICATE_ID", "CONFLICT", "UNAVAILABLE", "BORROW_LIMIT_REACHED", "INVALID_STATE", "ALREADY_CLOSED"}
UNPROCESSABLE = {"VALIDATION_ERROR", "MISMATCH", "UNRESOLVED_USER", "NOT_EXTENDED"}

def _check(r: dict) -> dict:
    if not r["ok"]:
        code = r.get("code")
        status = (
            404 if code in NOT_FOUND
            else 409 if code in CONFLICT
            else 422 if code in UNPROCESSABLE
            else 400
        )
        raise HTTPException(status_code=status, detail=r["message"])
    return r.get("data") or {}

def _book(d: dict) -> BookOut:
    return BookOut(
        id=d["book_id"],
        title=d["title"],
        author=d["author"],
        isbn=d.get("isbn") or "",
        publication_year=d.get("publication_year"),
        category=d.get("category"),
        copies_total=d["copies_total"],
        copies_available=d["copies_available"],
        active_loan_ids=d.get("active_loan_ids", []),
        reservations=d.get("reservations", []),
    )

def _user(d: dict) -> UserOut:
    return UserOut(id=d["user_id"], **{k: v for k, v in d.items() if k != "user_id"})

def _loan(d: dict) -> LoanOut:
    return LoanOut(id=d["loan_id"], **{k: v for k, v in d.items() if k != "loan_id"})

def _request(d: dict) -> RequestOut:
    return RequestOut(id=d["request_id"], **{k: v for k, v in d.items() if k != "request_id"})

# ---- books
@router.get("/books", response_model=list[BookOut])
def http_list_books(q: str | None = None, category: str | None = None, available: bool = False,
                          lib: Library = Depends(get_library)):
    d = _check(actions.list_books(lib, q=q, category=category, available_only=available))
    return [_book(it) for it in d.get("items") or []]

@router.post("/books", response_model=BookOut)
def http_create_book(payload: BookIn, lib: Library = Depends(get_library)):
    r = actions.register_book(
        lib,
        book_id=payload.id,
        title=payload.title,
        author=payload.author,
        isbn=payload.isbn,
        publication_year=payload.publication_year,
        category=payload.category,
        total_copies=payload.total_copies,
    )
    return _book(_check(r))

@router.get("/books/{book_id}", response_model=BookOut)
def http_get_book(book_id: str, lib: Library = Depends(get_library)):
    return _book(_check(actions.get_book(lib, book_id=book_id)))

@router.patch("/books/{book_id}", response_model=BookOut)
def http_update_book(book_id: str, payload: BookUpdate, lib: Library = Depends(get_library)):
    fields = payload.model_dump(exclude_unset=True)
    return _book(_check(actions.update_book(lib, book_id=book_id, fields=fields)))

@router.delete("/books/{book_id}")
def http_delete_book(book_id: str, lib: Library = Depends(get_library)):
    r = actions.delete_book(lib, book_id=book_id)
    return {"detail": r["message"], **_check(r)}

@router.post("/books/{book_id}/reservations")
def http_reserve_book(book_id: str, payload: ReserveIn, lib: Library = Depends(get_library)):
    r = actions.reserve_book(lib, book_id=book_id, user_id=payload.user_id)
    return {"detail": r["message"], **_check(r)}

@router.delete("/books/{book_id}/reservations/{user_id}")
def http_cancel_reservation(book_id: str, user_id: str, lib: Library = Depends(get_library)):
    r = actions.reserve_book(lib, book_id=book_id, user_id=user_id, cancel=True)
    return {"detail": r["message"], **_check(r)}

# ---- users
@router.get("/users", response_model=list[UserOut])
def http_list_users(q: str | None = None, active: bool | None = None,
                          lib: Library = Depends(get_library)):
    d = _check(actions.list_users(lib, q=q, active=active))
    return [_user(it) for it in d.get("items") or []]

@router.post("/users", response_model=UserOut)
def http_create_user(payload: UserIn, lib: Library = Depends(get_library)):
    r = actions.register_user(
        lib,
        user_id=payload.id,
        name=payload.name,
        email=payload.email,
        username=payload.username,
        phone=payload.phone,
        role=payload.role.upper(),
        borrow_limit=payload.borrow_limit,
    )
    return _user(_check(r))

@router.get("/users/{user_id}", response_model=UserOut)
def http_get_user(user_id: str, lib: Library = Depends(get_library)):
    return _user(_check(actions.get_user(lib, user_id=user_id)))

@router.patch("/users/{user_id}", response_model=UserOut)
def http_update_user(user_id: str, payload: UserUpdate, lib: Library = Depends(get_library)):
    fields = payload.model_dump(exclude_unset=True)
    if fields.get("role"):
        fields["role"] = fields["role"].upper()
    return _user(_check(actions.update_user(lib, user_id=user_id, fields=fields)))

@router.delete("/users/{user_id}")
def http_delete_user(user_id: str, lib: Library = Depends(get_library)):
    r = actions.delete_user(lib, user_id=user_id)
    return {"detail": r["message"], **_check(r)}

# ---- loans
@router.get("/loans", response_model=list[LoanOut])
def http_list_loans(status: str | None = None, user_id: str | None = None, book_id: str | None = None,
                          q: str | None = None, lib: Library = Depends(get_library)):
    d = _check(actions.list_loans(lib, status=status, user_id=user_id, book_id=book_id, q=q))
    return [_loan(it) for it in d.get("items") or []]

@router.post("/loans", response_model=LoanOut)
def http_issue_loan(payload: LoanIn, lib: Library = Depends(get_library)):
    r = actions.issue_loan(
        lib,
        user_id=payload.user_id,
        book_id=payload.book_id,
        loan_id=payload.loan_id,
        due_date=payload.due_date,
        notes=payload.notes,
    )
    return _loan(_check(r))

@router.post("/loans/refresh")
def http_refresh_loans(lib: Library = Depends(get_library)):
    r = actions.refresh_loans(lib)
    return {"detail": r["message"], **_check(r)}

@router.get("/loans/{loan_id}", response_model=LoanOut)
def http_get_loan(loan_id: str, lib: Library = Depends(get_library)):
    return _loan(_check(actions.get_loan(lib, loan_id=loan_id)))

@router.post("/loans/{loan_id}/return", response_model=LoanOut)
def http_return_loan(loan_id: str, lib: Library = Depends(get_library)):
    return _loan(_check(actions.return_loan(lib, loan_id=loan_id)))

@router.post("/loans/{loan_id}/extend", response_model=LoanOut)
def http_extend_loan(loan_id: str, payload: ExtendIn, lib: Library = Depends(get_library)):
    return _loan(_check(actions.extend_loan(lib, loan_id=loan_id, days=payload.days)))

@router.post("/loans/{loan_id}/lost", response_model=LoanOut)
def http_mark_lost(loan_id: str, payload: LostIn, lib: Library = Depends(get_library)):
    return _loan(_check(actions.mark_lost(lib, loan_id=loan_id, fine=payload.fine)))

@router.get("/loans/{loan_id}/fine", response_model=FineOut)
def http_loan_fine(loan_id: str, lib: Library = Depends(get_library)):
    r = actions.calculate_fine(lib, loan_id=loan_id)
    d = _check(r)
    return FineOut(loan_id=d["loan_id"], fine_amount=d["fine_amount"], detail=r["message"])

@router.post("/loans/{loan_id}/refresh", response_model=LoanOut)
def http_refresh_loan(loan_id: str, lib: Library = Depends(get_library)):
    return _loan(_check(actions.refresh_loans(lib, loan_id=loan_id)))

# ---- borrow requests
@router.get("/requests", response_model=list[RequestOut])
def http_list_requests(status: str | None = None, username: str | None = None,
                             book_id: str | None = None, lib: Library = Depends(get_library)):
    d = _check(actions.list_requests(lib, status=status, username=username, book_id=book_id))
    return [_request(it) for it in d.get("items") or []]

@router.post("/requests", response_model=RequestOut)
def http_create_request(payload: RequestIn, lib: Library = Depends(get_library)):
    r = actions.create_request(
        lib,
        username=payload.username,
        book_id=payload.book_id,
        desired_return_date=payload.desired_return_date,
    )
    return _request(_check(r))

@router.get("/requests/{request_id}", response_model=RequestOut)
def http_get_request(request_id: str, lib: Library = Depends(get_library)):
    return _request(_check(actions.get_request(lib, request_id=request_id)))

@router.post("/requests/{request_id}/approve", response_model=RequestOut)
def http_approve_request(request_id: str, payload: DecisionIn, lib: Library = Depends(get_library)):
    return _request(_check(actions.approve_request(lib, request_id=request_id, admin_id=payload.admin_id)))

@router.post("/requests/{request_id}/deny", response_model=RequestOut)
def http_deny_request(request_id: str, payload: DecisionIn, lib: Library = Depends(get_library)):
    r = actions.deny_request(lib, request_id=request_id, admin_id=payload.admin_id, reason=payload.reason)
    return _request(_check(r))

@router.get("/stats", response_model=StatsOut)
def http_stats(lib: Library = Depends(get_library)):
    return StatsOut(**_check(actions.library_stats(lib)))
