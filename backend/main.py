from fastapi import FastAPI
import uvicorn
from fastapi.middleware.cors import CORSMiddleware
from db.database import create_db_and_tables
from core.auth import fastapi_users, auth_backend
from core.logging_config import setup_logging
from contextlib import asynccontextmanager
from routers.inventory import router as inventory_router
from routers.notifications import router as notifications_router
from routers.orders import router as orders_router
from schemas.users import UserRead, UserCreate, UserUpdate


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await create_db_and_tables()
    yield


app = FastAPI(
    title="Restaurant POS API",
    description="Ingredient stock ledger and staff notifications for the restaurant POS",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Authentication routes (fastapi-users)
app.include_router(fastapi_users.get_auth_router(auth_backend), prefix="/auth/jwt", tags=["auth"],)
app.include_router(fastapi_users.get_register_router(UserRead, UserCreate), prefix="/auth", tags=["auth"])
app.include_router(fastapi_users.get_reset_password_router(), prefix="/auth", tags=["auth"])
app.include_router(fastapi_users.get_verify_router(UserRead), prefix="/auth", tags=["auth"])
app.include_router(fastapi_users.get_users_router(UserRead, UserUpdate), prefix="/users", tags=["users"])

# Order lifecycle hooks into the stock ledger
app.include_router(orders_router, prefix="/orders", tags=["orders"])

# Ingredient stock, history and usage reports
app.include_router(inventory_router, prefix="/inventory", tags=["inventory"])

# Staff notifications
app.include_router(notifications_router, prefix="/notifications", tags=["notifications"])

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
