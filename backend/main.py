# backend/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

load_dotenv()

from config import settings
from database import init_db
from utils.errors import InventoryError

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Routers
from routes.auth import router as auth_router
from routes.products import router as products_router
from routes.stock import router as stock_router
from routes.alerts import router as alerts_router
from routes.suppliers import router as suppliers_router
from routes.stats import router as stats_router
from routes.logs import router as logs_router

# Initialisation
init_db()

app = FastAPI(title="Inventory Ledger API", version="1.0.0")

# CORS Configuration
# Local frontend dev servers plus the deployed frontend, when configured
origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
if settings.FRONTEND_URL:
    origins.append(settings.FRONTEND_URL)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Ledger failures carry their own status code and field errors
@app.exception_handler(InventoryError)
async def inventory_error_handler(request: Request, exc: InventoryError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Request validation errors, keyed by field name like the ledger's own errors
@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    field_errors = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        field = loc[0] if loc else "general"
        field_errors.setdefault(field, []).append(err.get("msg", "Invalid value"))
    return JSONResponse(
        status_code=422,
        content={"success": False, "stock_changed": False, "message": "Invalid form data.", "field_errors": field_errors},
    )


# Router registration
app.include_router(auth_router)
app.include_router(products_router)
app.include_router(stock_router, prefix="/stock")
app.include_router(alerts_router)
app.include_router(suppliers_router)
app.include_router(stats_router)
app.include_router(logs_router)

@app.get("/")
def read_root():
    return {"message": "Inventory Ledger API is running"}
