import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal, init_db, session_scope
from periods import resolve_month
from schemas import (
    BudgetIn,
    BudgetOut,
    CategoryOut,
    CreatedOut,
    Credentials,
    ExpenseIn,
    ExpenseOut,
    MonthlySummaryOut,
    PasswordChangeIn,
    ProfileIn,
    ProfileOut,
)
from services import (
    AuthenticationFailed,
    BudgetService,
    CategoryService,
    DuplicateKey,
    ExpenseService,
    NotFound,
    StatsService,
    StorageUnavailable,
    UserService,
    ValidationError,
    seed_defaults,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Expense Ledger")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_user_id(x_user_id: Optional[str] = Header(default=None)) -> int:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    try:
        return int(x_user_id)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail="Invalid X-User-Id header") from exc


def month_from_request(month: Optional[str]):
    try:
        return resolve_month(month)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.exception_handler(StorageUnavailable)
async def storage_unavailable_handler(request: Request, exc: StorageUnavailable):
    logger.error(f"request_failed: path={request.url.path} error=storage_unavailable")
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.on_event("startup")
def startup_event():
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    init_db()
    with session_scope() as session:
        seed_defaults(session, demo_user=settings.seed_demo_user)
    logger.info("startup: schema ready, defaults seeded")


@app.post("/api/signup")
def signup(data: Credentials, db: Session = Depends(get_db)):
    try:
        user = UserService(db).create(data.username, data.password)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except DuplicateKey as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {"success": True, "user_id": user.id}


@app.post("/api/login")
def login(data: Credentials, db: Session = Depends(get_db)):
    try:
        user = UserService(db).authenticate(data.username, data.password)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except AuthenticationFailed as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    return {"success": True, "user_id": user.id}


@app.get("/api/user/profile", response_model=ProfileOut)
def get_profile(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    try:
        return UserService(db).profile(user_id)
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.put("/api/user/profile")
def update_profile(
    data: ProfileIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        UserService(db).update_profile(
            user_id, data.username, email=data.email, phone=data.phone
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except DuplicateKey as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {"success": True, "message": "Profile updated successfully"}


@app.delete("/api/user/profile")
def delete_profile(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    UserService(db).delete(user_id)
    return {"success": True, "message": "Account deleted successfully"}


@app.post("/api/user/change-password")
def change_password(
    data: PasswordChangeIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        UserService(db).change_password(user_id, data.old_password, data.new_password)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except AuthenticationFailed as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    return {"success": True, "message": "Password changed successfully"}


@app.get("/api/categories", response_model=list[CategoryOut])
def list_categories(db: Session = Depends(get_db)):
    return CategoryService(db).list_all()


@app.get("/api/expenses", response_model=list[ExpenseOut])
def list_expenses(
    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)
):
    return ExpenseService(db, user_id).list()


@app.post("/api/expenses", response_model=CreatedOut)
def create_expense(
    data: ExpenseIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    expense = ExpenseService(db, user_id).create(data)
    return CreatedOut(id=expense.id)


@app.delete("/api/expenses/{expense_id}")
def delete_expense(
    expense_id: int,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    ExpenseService(db, user_id).delete(expense_id)
    return {"success": True}


@app.get("/api/budgets", response_model=list[BudgetOut])
def list_budgets(
    month: Optional[str] = None,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return BudgetService(db, user_id).list_for_month(month_from_request(month))


@app.post("/api/budgets", response_model=CreatedOut)
def upsert_budget(
    data: BudgetIn,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    try:
        budget = BudgetService(db, user_id).upsert(data)
    except DuplicateKey as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return CreatedOut(id=budget.id)


@app.get("/api/stats/summary", response_model=MonthlySummaryOut)
def monthly_summary(
    month: Optional[str] = None,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    return StatsService(db, user_id).monthly_summary(month_from_request(month))


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
