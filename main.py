import random
import re
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import Depends, FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import database
from config import get_settings
from database import (
    CUSTOMERS,
    ORDERS,
    Clock,
    create_document,
    ensure_indexes,
    find_page,
    get_clock,
    get_database,
    get_db,
    serialize_doc,
    to_object_id,
    update_document,
)
from errors import ConflictError, NotFoundError, error_boundary, register_error_handlers
from logging_config import RequestLoggingMiddleware, get_logger, setup_logging
from schemas import (
    CUSTOMER_SORT_FIELDS,
    ORDER_SORT_FIELDS,
    CustomerCreate,
    CustomerStatus,
    CustomerStatusUpdate,
    CustomerUpdate,
    OrderAction,
    OrderCreate,
    OrderStatus,
    OrderType,
    OrderUpdate,
    generate_tracking_id,
)
from summary import Timeframe, summarize_customers

settings = get_settings()

setup_logging(
    service_name=settings.SERVICE_NAME,
    level=settings.LOG_LEVEL,
    environment=settings.ENVIRONMENT,
    version=settings.SERVICE_VERSION,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.SERVICE_NAME} version {settings.SERVICE_VERSION}")
    if database.db is not None:
        try:
            ensure_indexes(database.db)
            logger.info("Database indexes ensured")
        except Exception as e:
            logger.error(f"Index creation failed: {e}")
    else:
        logger.warning("DATABASE_URL/DATABASE_NAME not set, running without a database")
    yield
    logger.info(f"Shutting down {settings.SERVICE_NAME}")


app = FastAPI(title="Customer & Order Records API", version=settings.SERVICE_VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

register_error_handlers(app)


def _search_filter(search: str, fields) -> dict:
    # User input is matched literally, never as a regular expression
    pattern = {"$regex": re.escape(search), "$options": "i"}
    return {"$or": [{field: pattern} for field in fields]}


def _find_by_id(collection, record_id: str, not_found_message: str) -> dict:
    object_id = to_object_id(record_id)
    doc = collection.find_one({"_id": object_id}) if object_id is not None else None
    if not doc:
        raise NotFoundError(not_found_message)
    return doc


@app.get("/")
def read_root():
    return {"message": "Customer & Order Records API running"}


@app.get("/test")
def test_database(db: Optional[Database] = Depends(get_database)):
    response = {
        "backend": "Running",
        "database": "Not Available",
        "database_url": "Set" if settings.DATABASE_URL else "Not Set",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
    }

    if db is None:
        return response

    response["database"] = "Available"
    response["database_name"] = db.name
    try:
        collections = db.list_collection_names()
        response["collections"] = collections[:10]
        response["database"] = "Connected & Working"
        response["connection_status"] = "Connected"
    except Exception as e:
        response["database"] = f"Connected but Error: {str(e)[:80]}"

    return response


# -----------------------------
# Customers
# -----------------------------

@app.get("/api/customers/summary")
def customer_summary(
    timeframe: Optional[str] = Query("week"),
    db: Database = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    with error_boundary("Error retrieving customer summary"):
        data = summarize_customers(db[CUSTOMERS], Timeframe.parse(timeframe), clock())
    return {"success": True, "data": data}


@app.get("/api/customers")
def list_customers(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=1000),
    sort_by: str = Query("customerSince", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    search: Optional[str] = Query(None),
    status: Optional[CustomerStatus] = Query(None),
    db: Database = Depends(get_db),
):
    query = {}
    if search:
        query.update(_search_filter(search, ("customerName", "email", "phone")))
    if status:
        query["status"] = status.value
    if sort_by not in CUSTOMER_SORT_FIELDS:
        sort_by = "customerSince"

    with error_boundary("Error retrieving customers"):
        return find_page(db[CUSTOMERS], query, sort_by, sort_order, page, limit)


@app.get("/api/customers/{customer_id}")
def get_customer(customer_id: str, db: Database = Depends(get_db)):
    with error_boundary("Error retrieving customer"):
        customer = _find_by_id(db[CUSTOMERS], customer_id, "Customer not found")
    return {"success": True, "data": serialize_doc(customer)}


@app.post("/api/customers", status_code=201)
def create_customer(
    payload: CustomerCreate,
    db: Database = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    with error_boundary("Error creating customer"):
        customers = db[CUSTOMERS]
        if customers.find_one({"email": payload.email}):
            raise ConflictError("Customer with this email already exists")

        now = clock()
        customer_dict = payload.model_dump()
        customer_dict["customerSince"] = payload.customerSince or now
        try:
            customer_id = create_document(db, CUSTOMERS, customer_dict, now)
        except DuplicateKeyError as e:
            raise ConflictError("Customer with this email already exists") from e

        customer = customers.find_one({"_id": to_object_id(customer_id)})

    logger.info("Customer created", extra={"extra_fields": {"customer_id": customer_id}})
    return {
        "success": True,
        "message": "Customer created successfully",
        "data": serialize_doc(customer),
    }


@app.put("/api/customers/{customer_id}")
def update_customer(
    customer_id: str,
    payload: CustomerUpdate,
    db: Database = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    with error_boundary("Error updating customer"):
        customers = db[CUSTOMERS]
        customer = _find_by_id(customers, customer_id, "Customer not found")

        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        email = changes.get("email")
        if email and email != customer.get("email"):
            if customers.find_one({"email": email, "_id": {"$ne": customer["_id"]}}):
                raise ConflictError("Another customer with this email already exists")

        try:
            updated = update_document(customers, customer["_id"], changes, clock())
        except DuplicateKeyError as e:
            raise ConflictError("Email already exists") from e

    logger.info(
        "Customer updated",
        extra={"extra_fields": {"customer_id": customer_id, "fields": sorted(changes)}},
    )
    return {
        "success": True,
        "message": "Customer updated successfully",
        "data": serialize_doc(updated),
    }


@app.patch("/api/customers/{customer_id}/status")
def update_customer_status(
    customer_id: str,
    payload: CustomerStatusUpdate,
    db: Database = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    with error_boundary("Error updating customer status"):
        customers = db[CUSTOMERS]
        customer = _find_by_id(customers, customer_id, "Customer not found")
        updated = update_document(customers, customer["_id"], {"status": payload.status}, clock())

    logger.info(
        "Customer status updated",
        extra={"extra_fields": {"customer_id": customer_id, "status": payload.status}},
    )
    return {
        "success": True,
        "message": "Customer status updated successfully",
        "data": serialize_doc(updated),
    }


@app.delete("/api/customers/{customer_id}")
def delete_customer(customer_id: str, db: Database = Depends(get_db)):
    with error_boundary("Error deleting customer"):
        customers = db[CUSTOMERS]
        customer = _find_by_id(customers, customer_id, "Customer not found")
        customers.delete_one({"_id": customer["_id"]})

    logger.info("Customer deleted", extra={"extra_fields": {"customer_id": customer_id}})
    return {"success": True, "message": "Customer deleted successfully"}


# -----------------------------
# Orders
# -----------------------------

@app.get("/api/orders")
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=1000),
    sort_by: str = Query("orderDate", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    search: Optional[str] = Query(None),
    status: Optional[OrderStatus] = Query(None),
    action: Optional[OrderAction] = Query(None),
    order_type: Optional[OrderType] = Query(None, alias="orderType"),
    db: Database = Depends(get_db),
):
    query = {}
    if search:
        query.update(_search_filter(search, ("customerName", "trackingId", "customerEmail")))
    if status:
        query["status"] = status.value
    if action:
        query["action"] = action.value
    if order_type:
        query["orderType"] = order_type.value
    if sort_by not in ORDER_SORT_FIELDS:
        sort_by = "orderDate"

    with error_boundary("Error retrieving orders"):
        return find_page(db[ORDERS], query, sort_by, sort_order, page, limit)


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, db: Database = Depends(get_db)):
    with error_boundary("Error retrieving order"):
        order = _find_by_id(db[ORDERS], order_id, "Order not found")
    return {"success": True, "data": serialize_doc(order)}


@app.post("/api/orders", status_code=201)
def create_order(
    payload: OrderCreate,
    db: Database = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    with error_boundary("Error creating order"):
        orders = db[ORDERS]
        now = clock()
        order_dict = payload.model_dump(exclude_none=True)
        order_dict["orderDate"] = payload.orderDate or now
        order_dict["trackingId"] = payload.trackingId or generate_tracking_id(now)

        if orders.find_one({"trackingId": order_dict["trackingId"]}):
            raise ConflictError("Order with this tracking ID already exists")
        try:
            order_id = create_document(db, ORDERS, order_dict, now)
        except DuplicateKeyError as e:
            raise ConflictError("Order with this tracking ID already exists") from e

        order = orders.find_one({"_id": to_object_id(order_id)})

    logger.info(
        "Order created",
        extra={"extra_fields": {"order_id": order_id, "tracking_id": order_dict["trackingId"]}},
    )
    return {
        "success": True,
        "message": "Order created successfully",
        "data": serialize_doc(order),
    }


@app.put("/api/orders/{order_id}")
def update_order(
    order_id: str,
    payload: OrderUpdate,
    db: Database = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    with error_boundary("Error updating order"):
        orders = db[ORDERS]
        order = _find_by_id(orders, order_id, "Order not found")

        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        tracking_id = changes.get("trackingId")
        if tracking_id and tracking_id != order.get("trackingId"):
            if orders.find_one({"trackingId": tracking_id, "_id": {"$ne": order["_id"]}}):
                raise ConflictError("Another order with this tracking ID already exists")

        try:
            updated = update_document(orders, order["_id"], changes, clock())
        except DuplicateKeyError as e:
            raise ConflictError("Tracking ID already exists") from e

    logger.info(
        "Order updated",
        extra={"extra_fields": {"order_id": order_id, "fields": sorted(changes)}},
    )
    return {
        "success": True,
        "message": "Order updated successfully",
        "data": serialize_doc(updated),
    }


@app.delete("/api/orders/{order_id}")
def delete_order(order_id: str, db: Database = Depends(get_db)):
    with error_boundary("Error deleting order"):
        orders = db[ORDERS]
        order = _find_by_id(orders, order_id, "Order not found")
        orders.delete_one({"_id": order["_id"]})

    logger.info("Order deleted", extra={"extra_fields": {"order_id": order_id}})
    return {"success": True, "message": "Order deleted successfully"}


# -----------------------------
# Seed demo data
# -----------------------------

DEMO_CUSTOMERS = [
    {"customerName": "Alice Johnson", "email": "alice@example.com", "phone": "+1 555 0100", "ordersCount": 5, "orderTotal": 1250.5, "abandonedCarts": 2},
    {"customerName": "Bob Smith", "email": "bob@example.com", "phone": "+1 555 0101", "ordersCount": 1, "orderTotal": 89.0},
    {"customerName": "Cara Lee", "email": "cara@example.com", "phone": "+1 555 0102", "status": "inactive", "abandonedCarts": 1},
    {"customerName": "Dan Brown", "email": "dan@example.com", "phone": "+1 555 0103", "ordersCount": 3, "orderTotal": 412.75},
]


@app.post("/api/seed")
def seed_demo_data(db: Database = Depends(get_db), clock: Clock = Depends(get_clock)):
    now = clock()
    inserted = {"customers": 0, "orders": 0}

    with error_boundary("Error seeding demo data"):
        if db[CUSTOMERS].count_documents({}) == 0:
            for index, c in enumerate(DEMO_CUSTOMERS):
                customer = CustomerCreate(**c)
                customer_dict = customer.model_dump()
                customer_dict["customerSince"] = now - timedelta(days=30 * index + 3)
                create_document(db, CUSTOMERS, customer_dict, now)
                inserted["customers"] += 1

        if db[ORDERS].count_documents({}) == 0:
            for _ in range(20):
                c = random.choice(DEMO_CUSTOMERS)
                order_date = now - timedelta(days=random.randint(0, 29))
                order = OrderCreate(
                    customerName=c["customerName"],
                    customerEmail=c["email"],
                    customerPhone=c["phone"],
                    orderTotal=round(random.uniform(10, 500), 2),
                    orderType=random.choice(list(OrderType)),
                    action=random.choice(list(OrderAction)),
                    orderDate=order_date,
                )
                order_dict = order.model_dump(exclude_none=True)
                order_dict["trackingId"] = generate_tracking_id(order_date)
                create_document(db, ORDERS, order_dict, now)
                inserted["orders"] += 1

    logger.info("Seeded demo data", extra={"extra_fields": inserted})
    return {"success": True, "message": "Seeded demo data", "data": inserted}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
