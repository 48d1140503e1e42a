"""FastAPI router configuration."""
from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse

from . import crud, reports, schemas
from .config import Settings, get_settings
from .database import create_engine, create_session_factory
from .errors import ClickStoreError, InvariantViolation, NotFoundError, PersistenceFailure
from .lifecycle import LifecycleOrchestrator, RecordLocks
from .management import init_database
from .records import Assignment, Company, Customer, ItemKind, MaintenanceItem
from .sql_store import SqlAlchemyStore
from .store import JsonFileStore, LedgerStore

logger = logging.getLogger(__name__)

router = APIRouter()

_ERROR_STATUS = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvariantViolation, status.HTTP_409_CONFLICT),
    (PersistenceFailure, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def provide_settings() -> Settings:
    """Dependency returning the active :class:`Settings` instance."""

    return get_settings()


async def get_store(request: Request) -> AsyncIterator[LedgerStore]:
    """Yield the persistence collaborator for one request."""

    json_store = request.app.state.json_store
    if json_store is not None:
        yield json_store
        return
    async with request.app.state.session_factory() as session:
        yield SqlAlchemyStore(session)


def get_orchestrator(
    request: Request,
    store: LedgerStore = Depends(get_store),
    settings: Settings = Depends(provide_settings),
) -> LifecycleOrchestrator:
    return LifecycleOrchestrator(
        store, locks=request.app.state.record_locks, strict=settings.strict_stock
    )


@router.get("/health", response_model=schemas.HealthStatus, tags=["system"])
async def health_check(settings: Settings = Depends(provide_settings)) -> schemas.HealthStatus:
    return schemas.HealthStatus(environment=settings.environment)


def build_item_router(kind: ItemKind, prefix: str) -> APIRouter:
    """CRUD routes for one kind of stock item (products or accessories)."""

    item_router = APIRouter(prefix=prefix, tags=[prefix.strip("/")])

    @item_router.post("", response_model=schemas.StockItemOut, status_code=status.HTTP_201_CREATED)
    async def create_item(
        payload: schemas.StockItemCreate,
        orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
    ) -> schemas.StockItemOut:
        item = await orchestrator.create_item(kind, payload)
        return schemas.StockItemOut.model_validate(item)

    @item_router.get("", response_model=list[schemas.StockItemOut])
    async def list_items(
        store: LedgerStore = Depends(get_store),
    ) -> Sequence[schemas.StockItemOut]:
        items = await crud.list_items(store, kind)
        return [schemas.StockItemOut.model_validate(item) for item in items]

    @item_router.get("/{item_id}", response_model=schemas.StockItemOut)
    async def get_item(
        item_id: str, store: LedgerStore = Depends(get_store)
    ) -> schemas.StockItemOut:
        item = await crud.get_item(store, kind, item_id)
        return schemas.StockItemOut.model_validate(item)

    @item_router.put("/{item_id}", response_model=schemas.StockItemOut)
    async def update_item(
        item_id: str,
        payload: schemas.StockItemUpdate,
        orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
    ) -> schemas.StockItemOut:
        item = await orchestrator.update_item(kind, item_id, payload)
        return schemas.StockItemOut.model_validate(item)

    @item_router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_item(
        item_id: str, orchestrator: LifecycleOrchestrator = Depends(get_orchestrator)
    ) -> None:
        await orchestrator.delete_item(kind, item_id)

    return item_router


@router.post("/customers", response_model=schemas.CustomerOut, status_code=status.HTTP_201_CREATED)
async def create_customer(
    payload: schemas.CustomerCreate,
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
) -> schemas.CustomerOut:
    customer = await orchestrator.create_customer(payload)
    return schemas.CustomerOut.model_validate(customer)


@router.get("/customers", response_model=list[schemas.CustomerOut])
async def list_customers(store: LedgerStore = Depends(get_store)) -> Sequence[schemas.CustomerOut]:
    customers = await crud.list_contacts(store, Customer)
    return [schemas.CustomerOut.model_validate(customer) for customer in customers]


@router.get("/customers/{customer_id}", response_model=schemas.CustomerOut)
async def get_customer(
    customer_id: str, store: LedgerStore = Depends(get_store)
) -> schemas.CustomerOut:
    customer = await crud.get_contact(store, Customer, customer_id)
    return schemas.CustomerOut.model_validate(customer)


@router.put("/customers/{customer_id}", response_model=schemas.CustomerOut)
async def update_customer(
    customer_id: str,
    payload: schemas.CustomerUpdate,
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
) -> schemas.CustomerOut:
    customer = await orchestrator.update_customer(customer_id, payload)
    return schemas.CustomerOut.model_validate(customer)


@router.delete("/customers/{customer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_customer(
    customer_id: str, orchestrator: LifecycleOrchestrator = Depends(get_orchestrator)
) -> None:
    await orchestrator.delete_customer(customer_id)


@router.post("/companies", response_model=schemas.CompanyOut, status_code=status.HTTP_201_CREATED)
async def create_company(
    payload: schemas.CompanyCreate,
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
) -> schemas.CompanyOut:
    company = await orchestrator.create_company(payload)
    return schemas.CompanyOut.model_validate(company)


@router.get("/companies", response_model=list[schemas.CompanyOut])
async def list_companies(store: LedgerStore = Depends(get_store)) -> Sequence[schemas.CompanyOut]:
    companies = await crud.list_contacts(store, Company)
    return [schemas.CompanyOut.model_validate(company) for company in companies]


@router.get("/companies/{company_id}", response_model=schemas.CompanyOut)
async def get_company(
    company_id: str, store: LedgerStore = Depends(get_store)
) -> schemas.CompanyOut:
    company = await crud.get_contact(store, Company, company_id)
    return schemas.CompanyOut.model_validate(company)


@router.put("/companies/{company_id}", response_model=schemas.CompanyOut)
async def update_company(
    company_id: str,
    payload: schemas.CompanyUpdate,
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
) -> schemas.CompanyOut:
    company = await orchestrator.update_company(company_id, payload)
    return schemas.CompanyOut.model_validate(company)


@router.delete("/companies/{company_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_company(
    company_id: str, orchestrator: LifecycleOrchestrator = Depends(get_orchestrator)
) -> None:
    await orchestrator.delete_company(company_id)


@router.get("/assignments", response_model=list[schemas.AssignmentOut], tags=["assignments"])
async def list_assignments(
    customer_id: str | None = None,
    item_id: str | None = None,
    store: LedgerStore = Depends(get_store),
) -> Sequence[schemas.AssignmentOut]:
    filters = {}
    if customer_id is not None:
        filters["customer_id"] = customer_id
    if item_id is not None:
        filters["item_id"] = item_id
    assignments = await store.list(Assignment, **filters)
    return [schemas.AssignmentOut.model_validate(assignment) for assignment in assignments]


@router.post("/assignments", response_model=schemas.AssignmentOut, tags=["assignments"])
async def assign_item(
    payload: schemas.AssignmentCreate,
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
) -> schemas.AssignmentOut:
    if payload.serial_numbers:
        assignment = await orchestrator.assign_by_serials(
            payload.customer_id, payload.item_id, payload.serial_numbers
        )
    else:
        assignment = await orchestrator.assign_by_quantity(
            payload.customer_id, payload.item_id, payload.quantity
        )
    return schemas.AssignmentOut.model_validate(assignment)


@router.post(
    "/assignments/return", response_model=schemas.AssignmentReturnOut, tags=["assignments"]
)
async def return_to_stock(
    payload: schemas.AssignmentReturn,
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
) -> schemas.AssignmentReturnOut:
    assignment, item = await orchestrator.return_to_stock(
        payload.customer_id,
        payload.item_id,
        payload.serial_numbers,
        quantity=payload.quantity,
    )
    return schemas.AssignmentReturnOut(
        assignment=None if assignment is None else schemas.AssignmentOut.model_validate(assignment),
        item=schemas.StockItemOut.model_validate(item),
    )


@router.delete(
    "/assignments/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["assignments"]
)
async def remove_assignment(
    assignment_id: str, orchestrator: LifecycleOrchestrator = Depends(get_orchestrator)
) -> None:
    await orchestrator.remove_assignment(assignment_id)


@router.get("/maintenance", response_model=list[schemas.MaintenanceOut], tags=["maintenance"])
async def list_maintenance(
    store: LedgerStore = Depends(get_store),
) -> Sequence[schemas.MaintenanceOut]:
    batches = await store.list(MaintenanceItem)
    return [schemas.MaintenanceOut.model_validate(batch) for batch in batches]


@router.post(
    "/maintenance",
    response_model=schemas.MaintenanceOut,
    status_code=status.HTTP_201_CREATED,
    tags=["maintenance"],
)
async def send_to_maintenance(
    payload: schemas.MaintenanceCreate,
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
) -> schemas.MaintenanceOut:
    batch = await orchestrator.send_to_maintenance(
        payload.item_id,
        company_id=payload.company_id,
        serials=payload.serial_numbers,
        quantity=payload.quantity,
    )
    return schemas.MaintenanceOut.model_validate(batch)


@router.post(
    "/maintenance/{maintenance_id}/restore",
    response_model=schemas.StockItemOut,
    tags=["maintenance"],
)
async def restore_from_maintenance(
    maintenance_id: str, orchestrator: LifecycleOrchestrator = Depends(get_orchestrator)
) -> schemas.StockItemOut:
    item = await orchestrator.restore_from_maintenance(maintenance_id)
    return schemas.StockItemOut.model_validate(item)


@router.delete(
    "/maintenance/{maintenance_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["maintenance"],
)
async def discard_maintenance(
    maintenance_id: str, orchestrator: LifecycleOrchestrator = Depends(get_orchestrator)
) -> None:
    await orchestrator.discard_maintenance(maintenance_id)


@router.get("/reports/summary", response_model=schemas.ReportSummary, tags=["reports"])
async def report_summary(
    store: LedgerStore = Depends(get_store),
    settings: Settings = Depends(provide_settings),
) -> schemas.ReportSummary:
    return await reports.summarize(
        store,
        low_stock_threshold=settings.low_stock_threshold,
        recent_days=settings.recent_assignment_days,
    )


@router.get("/reports/consistency", response_model=schemas.ConsistencyReport, tags=["reports"])
async def report_consistency(
    store: LedgerStore = Depends(get_store),
) -> schemas.ConsistencyReport:
    return await reports.audit(store)


async def handle_click_store_error(request: Request, exc: ClickStoreError) -> JSONResponse:
    status_code = status.HTTP_400_BAD_REQUEST
    for error_type, mapped in _ERROR_STATUS:
        if isinstance(exc, error_type):
            status_code = mapped
            break
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    body = schemas.ErrorOut(code=exc.code, detail=exc.message)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if app.state.json_store is None:
            await init_database(app.state.engine)
        yield
        await app.state.engine.dispose()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.dependency_overrides[provide_settings] = lambda: settings
    app.state.engine = create_engine(settings)
    app.state.session_factory = create_session_factory(app.state.engine)
    app.state.json_store = (
        JsonFileStore(settings.json_storage_path) if settings.storage_backend == "json" else None
    )
    app.state.record_locks = RecordLocks()

    app.add_exception_handler(ClickStoreError, handle_click_store_error)
    app.include_router(router)
    app.include_router(build_item_router(ItemKind.PRODUCT, "/products"))
    app.include_router(build_item_router(ItemKind.ACCESSORY, "/accessories"))
    return app


app = create_app()


__all__ = ["app", "create_app"]
