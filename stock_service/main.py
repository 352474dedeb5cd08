from fastapi import FastAPI, APIRouter, Depends, HTTPException, Path, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
import logging
from contextlib import asynccontextmanager

# Use relative imports within the service package
from . import config, schemas
from .catalog import ItemCatalog
from .database import create_engine_and_session_factory, create_tables, get_db_session
from .directory import PrincipalDirectory
from .errors import Conflict, Forbidden, StockServiceError, StorageFailure
from .ledger import TransactionLedger
from .models import INT_MAX
from .reporting import StatsReporter
from .security import TokenClaims, TokenSigner
from .stock import StockCoordinator

# Configure logging basic setup
logging.basicConfig(level=config.LOG_LEVEL, format='%(asctime)s [%(levelname)s] %(name)s: %(message)s')
logger = logging.getLogger(__name__)


# --- Dependencies ---

bearer_scheme = HTTPBearer(auto_error=False)


def get_token_signer(request: Request) -> TokenSigner:
    return request.app.state.token_signer


def get_ledger(db: AsyncSession = Depends(get_db_session)) -> TransactionLedger:
    return TransactionLedger(db)


def get_directory(
    db: AsyncSession = Depends(get_db_session),
    signer: TokenSigner = Depends(get_token_signer),
) -> PrincipalDirectory:
    return PrincipalDirectory(db, signer)


def get_current_principal(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    directory: PrincipalDirectory = Depends(get_directory),
) -> TokenClaims:
    """No Authorization header is a 401; anything present but not a valid, unexpired Bearer token is a 403."""
    if credentials is None:
        if request.headers.get("Authorization"):
            logger.warning(f"Rejected non-Bearer Authorization header on {request.url.path}")
            raise Forbidden("Invalid token")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Access token required")
    return directory.verify(credentials.credentials)


def get_catalog(
    db: AsyncSession = Depends(get_db_session),
    ledger: TransactionLedger = Depends(get_ledger),
) -> ItemCatalog:
    return ItemCatalog(db, ledger)


def get_coordinator(
    db: AsyncSession = Depends(get_db_session),
    ledger: TransactionLedger = Depends(get_ledger),
) -> StockCoordinator:
    return StockCoordinator(db, ledger)


def get_reporter(db: AsyncSession = Depends(get_db_session)) -> StatsReporter:
    return StatsReporter(db)


# --- Auth routes ---

auth_router = APIRouter(prefix="/auth", tags=["Auth"])


@auth_router.post(
    "/register",
    response_model=schemas.CreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register User"
)
async def register(body: schemas.RegisterRequest, directory: PrincipalDirectory = Depends(get_directory)):
    try:
        user_id = await directory.register(body.username, body.email, body.password)
    except Conflict as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    return {"message": "User registered successfully", "id": user_id}


@auth_router.post("/login", response_model=schemas.LoginResponse, summary="Log In")
async def login(body: schemas.LoginRequest, directory: PrincipalDirectory = Depends(get_directory)):
    """Exchanges email and password for a bearer token valid for TOKEN_TTL_HOURS."""
    user, token = await directory.authenticate(body.email, body.password)
    return {"token": token, "user": schemas.UserRead.model_validate(user)}


# --- Item routes ---

items_router = APIRouter(prefix="/items", tags=["Items"])


@items_router.get("", response_model=List[schemas.ItemRead], summary="List Items")
async def list_items(
    principal: TokenClaims = Depends(get_current_principal),
    catalog: ItemCatalog = Depends(get_catalog),
):
    """Returns the caller's items, newest first."""
    return await catalog.list(principal.principal_id)


@items_router.get("/alerts/low-stock", response_model=List[schemas.ItemRead], summary="List Low Stock Items")
async def list_low_stock_items(
    principal: TokenClaims = Depends(get_current_principal),
    catalog: ItemCatalog = Depends(get_catalog),
):
    return await catalog.list_low_stock(principal.principal_id)


@items_router.get("/{item_id}", response_model=schemas.ItemRead, summary="Get Item")
async def read_item(
    item_id: int = Path(..., ge=1, le=INT_MAX),
    principal: TokenClaims = Depends(get_current_principal),
    catalog: ItemCatalog = Depends(get_catalog),
):
    return await catalog.get(principal.principal_id, item_id)


@items_router.post(
    "",
    response_model=schemas.CreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Item"
)
async def create_item(
    item: schemas.ItemCreate,
    principal: TokenClaims = Depends(get_current_principal),
    catalog: ItemCatalog = Depends(get_catalog),
):
    item_id = await catalog.create(principal.principal_id, **item.model_dump())
    return {"message": "Item created successfully", "id": item_id}


@items_router.put("/{item_id}", response_model=schemas.MessageResponse, summary="Replace Item")
async def update_item(
    item: schemas.ItemUpdate,
    item_id: int = Path(..., ge=1, le=INT_MAX),
    principal: TokenClaims = Depends(get_current_principal),
    catalog: ItemCatalog = Depends(get_catalog),
):
    """Replaces every field of the item. A changed quantity is booked as a ledger adjustment."""
    await catalog.update(principal.principal_id, item_id, **item.model_dump())
    return {"message": "Item updated successfully"}


@items_router.delete("/{item_id}", response_model=schemas.MessageResponse, summary="Delete Item")
async def delete_item(
    item_id: int = Path(..., ge=1, le=INT_MAX),
    principal: TokenClaims = Depends(get_current_principal),
    catalog: ItemCatalog = Depends(get_catalog),
):
    await catalog.delete(principal.principal_id, item_id)
    return {"message": "Item deleted successfully"}


# --- Transaction routes ---

transactions_router = APIRouter(prefix="/transactions", tags=["Transactions"])


@transactions_router.post(
    "",
    response_model=schemas.CreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record Stock Movement"
)
async def record_transaction(
    body: schemas.TransactionCreate,
    principal: TokenClaims = Depends(get_current_principal),
    coordinator: StockCoordinator = Depends(get_coordinator),
):
    """Books a stock-in or stock-out and adjusts the item's quantity in the same database transaction."""
    transaction_id = await coordinator.record(
        principal.principal_id, body.item_id, body.type, body.quantity, body.notes
    )
    return {"message": "Transaction recorded successfully", "id": transaction_id}


@transactions_router.get("", response_model=List[schemas.TransactionRead], summary="Transaction History")
async def list_transactions(
    item_id: int | None = Query(None, ge=1, le=INT_MAX),
    principal: TokenClaims = Depends(get_current_principal),
    ledger: TransactionLedger = Depends(get_ledger),
):
    return await ledger.list(principal.principal_id, item_id)


# --- Dashboard ---

dashboard_router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


@dashboard_router.get("/stats", response_model=schemas.DashboardStats, summary="Dashboard Statistics")
async def dashboard_stats(
    principal: TokenClaims = Depends(get_current_principal),
    reporter: StatsReporter = Depends(get_reporter),
):
    stats = await reporter.stats(principal.principal_id)
    return {
        "items": {"total_items": stats["total_items"], "total_quantity": stats["total_quantity"]},
        "total_value": stats["total_value"],
        "low_stock": stats["low_stock"],
    }


# --- Error translation ---

async def stock_service_error_handler(request: Request, exc: StockServiceError):
    if isinstance(exc, StorageFailure):
        # Cause stays in the logs, the caller only sees a generic message
        logger.error(f"Storage failure on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"detail": StorageFailure.default_message})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Rejected malformed request on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unexpected error on {request.method} {request.url.path}") # Log full traceback
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


def create_app(
    database_url: str | None = None,
    token_secret: str | None = None,
    token_ttl_hours: int | None = None,
) -> FastAPI:
    engine, session_factory = create_engine_and_session_factory(database_url or config.DATABASE_URL, echo=config.SQL_ECHO)

    # Use this only for development/testing. Use Alembic for production migrations.
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Stock Service starting up...")
        logger.info("Checking/Creating database tables...")
        await create_tables(engine)
        logger.info("Database tables check complete.")
        yield
        logger.info("Stock Service shutting down...")
        await engine.dispose() # Clean up engine resources

    app = FastAPI(
        title="Stock Service",
        description="Tracks per-user stock items, stock movements and dashboard statistics.",
        version="0.1.0",
        lifespan=lifespan
    )
    app.state.engine = engine
    app.state.session_factory = session_factory
    ttl_hours = token_ttl_hours if token_ttl_hours is not None else config.TOKEN_TTL_HOURS
    app.state.token_signer = TokenSigner(token_secret or config.TOKEN_SECRET, ttl_hours * 3600)

    app.add_exception_handler(StockServiceError, stock_service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    @app.get("/health", tags=["Monitoring"], summary="Health Check")
    async def health_check():
        return {"status": "healthy"}

    for router in (auth_router, items_router, transactions_router, dashboard_router):
        app.include_router(router, prefix="/api")
    return app


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Listening on {config.APP_HOST}:{config.APP_PORT}")
    uvicorn.run("stock_service.main:create_app", factory=True, host=config.APP_HOST, port=config.APP_PORT)
