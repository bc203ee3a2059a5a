from datetime import datetime, timezone
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from loanledger.config import configure_logging, settings
from loanledger.errors import (
    ConstraintViolation,
    InvalidState,
    LedgerError,
    NotFound,
    StoreError,
    ValidationError,
)
from loanledger.library import Library
from loanledger.transaction import Transaction, TransactionStatus

configure_logging()

library = Library()

app = FastAPI(title=settings.app_name, version=settings.app_version)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Errors ---
ERROR_STATUS = {
    NotFound: 404,
    ValidationError: 422,
    ConstraintViolation: 409,
    InvalidState: 409,
    StoreError: 502,
}


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    status = next((code for kind, code in ERROR_STATUS.items() if isinstance(exc, kind)), 500)
    content = {"detail": str(exc), "error": type(exc).__name__}
    field = getattr(exc, "field", None)
    if field:
        content["field"] = field
    return JSONResponse(status_code=status, content=content)


# --- Security ---
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def get_api_key(api_key: Optional[str] = Security(api_key_header)):
    """Dependency guarding every mutating endpoint."""
    if api_key == settings.api_key:
        return api_key
    raise HTTPException(status_code=403, detail="Could not validate credentials")


# --- Models ---
class BookModel(BaseModel):
    id: str
    title: str
    author: str
    isbn: str
    category: str
    total_copies: int
    available_copies: int
    availability_status: str
    created_at: Optional[str] = None


class BookCreateModel(BaseModel):
    title: str
    author: str
    isbn: str = ""
    category: str = ""
    total_copies: int = Field(default=1, description="Number of physical copies")


class BookUpdateModel(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None
    isbn: Optional[str] = None
    category: Optional[str] = None
    total_copies: Optional[int] = None


class MemberModel(BaseModel):
    id: str
    member_id: str
    name: str
    email: str
    phone: str
    address: Optional[str] = None
    membership_date: str
    created_at: Optional[str] = None


class MemberCreateModel(BaseModel):
    member_id: str
    name: str
    email: str
    phone: str
    address: Optional[str] = None


class MemberUpdateModel(BaseModel):
    member_id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class BookDetailModel(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None
    isbn: Optional[str] = None


class MemberDetailModel(BaseModel):
    member_id: Optional[str] = None
    name: Optional[str] = None


class TransactionModel(BaseModel):
    id: str
    book_id: str
    member_id: str
    issue_date: str
    due_date: str
    return_date: Optional[str] = None
    status: str
    overdue: bool
    created_at: Optional[str] = None
    book: Optional[BookDetailModel] = None
    member: Optional[MemberDetailModel] = None


class IssueRequest(BaseModel):
    book_id: str
    member_id: str
    due_days: int = Field(default=settings.default_due_days, description="Loan period in days (1-90)")


class StatsModel(BaseModel):
    total_books: int
    total_members: int
    active_transactions: int
    overdue_count: int


class LibraryStatsModel(BaseModel):
    total_books: int
    available_books: int
    borrowed_books: int
    total_members: int
    total_transactions: int
    active_loans: int
    returned_books: int
    overdue_books: int


class CategoryCountModel(BaseModel):
    category: str
    count: int


class ReportModel(BaseModel):
    stats: LibraryStatsModel
    categories: List[CategoryCountModel]
    overdue: List[TransactionModel]
    recent: List[TransactionModel]


def _transaction_model(transaction: Transaction) -> TransactionModel:
    return TransactionModel(**transaction.to_dict(), overdue=library.is_overdue(transaction))


# --- Health ---
@app.get("/health")
def health():
    """Lightweight health check that touches the store."""
    store_ok = True
    try:
        library.store.count("books")
    except LedgerError:
        store_ok = False
    return {
        "status": "healthy" if store_ok else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "store": settings.store_backend,
        "store_ok": store_ok,
    }


# --- Books ---
@app.get("/books", response_model=List[BookModel])
def get_books(
    q: Optional[str] = Query(None, description="Search title, author, ISBN or category"),
    available_only: bool = Query(False, description="Only books with copies on the shelf"),
):
    if available_only:
        books = library.list_available_books()
        if q:
            matches = {b.id for b in library.search_books(q)}
            books = [b for b in books if b.id in matches]
    else:
        books = library.search_books(q) if q else library.list_books()
    return [BookModel(**b.to_dict()) for b in books]


@app.get("/books/{book_id}", response_model=BookModel)
def get_book(book_id: str):
    return BookModel(**library.get_book(book_id).to_dict())


@app.post("/books", response_model=BookModel, status_code=201, dependencies=[Depends(get_api_key)])
def add_book(payload: BookCreateModel):
    book = library.add_book(
        payload.title, payload.author, isbn=payload.isbn,
        category=payload.category, total_copies=payload.total_copies,
    )
    return BookModel(**book.to_dict())


@app.put("/books/{book_id}", response_model=BookModel, dependencies=[Depends(get_api_key)])
def update_book(book_id: str, update: BookUpdateModel):
    book = library.update_book(
        book_id, title=update.title, author=update.author, isbn=update.isbn,
        category=update.category, total_copies=update.total_copies,
    )
    return BookModel(**book.to_dict())


@app.delete("/books/{book_id}", dependencies=[Depends(get_api_key)])
def delete_book(book_id: str):
    if not library.remove_book(book_id):
        raise HTTPException(status_code=404, detail="Book not found.")
    return {"message": "Book deleted."}


# --- Members ---
@app.get("/members", response_model=List[MemberModel])
def get_members(q: Optional[str] = Query(None, description="Search name, member ID or email")):
    members = library.search_members(q) if q else library.list_members()
    return [MemberModel(**m.to_dict()) for m in members]


@app.get("/members/{member_pk}", response_model=MemberModel)
def get_member(member_pk: str):
    return MemberModel(**library.get_member(member_pk).to_dict())


@app.post("/members", response_model=MemberModel, status_code=201, dependencies=[Depends(get_api_key)])
def add_member(payload: MemberCreateModel):
    member = library.add_member(
        payload.member_id, payload.name, payload.email, payload.phone, address=payload.address,
    )
    return MemberModel(**member.to_dict())


@app.put("/members/{member_pk}", response_model=MemberModel, dependencies=[Depends(get_api_key)])
def update_member(member_pk: str, update: MemberUpdateModel):
    member = library.update_member(
        member_pk, member_id=update.member_id, name=update.name, email=update.email,
        phone=update.phone, address=update.address,
    )
    return MemberModel(**member.to_dict())


@app.delete("/members/{member_pk}", dependencies=[Depends(get_api_key)])
def delete_member(member_pk: str):
    if not library.remove_member(member_pk):
        raise HTTPException(status_code=404, detail="Member not found.")
    return {"message": "Member deleted."}


# --- Transactions ---
@app.get("/transactions", response_model=List[TransactionModel])
def get_transactions(
    status: Optional[TransactionStatus] = Query(None, description="active | returned"),
    overdue: bool = Query(False, description="Only active loans past their due date"),
):
    transactions = library.list_overdue() if overdue else library.list_transactions(status)
    return [_transaction_model(t) for t in transactions]


@app.get("/transactions/{transaction_id}", response_model=TransactionModel)
def get_transaction(transaction_id: str):
    return _transaction_model(library.get_transaction(transaction_id))


@app.post("/transactions", response_model=TransactionModel, status_code=201,
          dependencies=[Depends(get_api_key)])
def issue_book(payload: IssueRequest):
    return _transaction_model(library.issue_book(payload.book_id, payload.member_id, payload.due_days))


@app.post("/transactions/{transaction_id}/return", response_model=TransactionModel,
          dependencies=[Depends(get_api_key)])
def return_book(transaction_id: str):
    return _transaction_model(library.return_book(transaction_id))


# --- Reports ---
@app.get("/stats", response_model=StatsModel)
def get_stats():
    return StatsModel(**library.get_statistics())


@app.get("/reports", response_model=ReportModel)
def get_report():
    report = library.get_report()
    return ReportModel(
        stats=LibraryStatsModel(**report["stats"]),
        categories=[CategoryCountModel(**c) for c in report["categories"]],
        overdue=[_transaction_model(t) for t in report["overdue"]],
        recent=[_transaction_model(t) for t in report["recent"]],
    )
