import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import config, models
from .database import engine
from .routers import (
    appointments,
    auth,
    billing,
    dashboard,
    notifications,
    online_requests,
    slots,
    treatments,
    users,
)

logging.basicConfig(level=config.LOG_LEVEL)

# Create tables
models.Base.metadata.create_all(bind=engine)

app = FastAPI(title="Dental Clinic Booking System", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(slots.router)
app.include_router(appointments.router)
app.include_router(online_requests.router)
app.include_router(billing.router)
app.include_router(treatments.router)
app.include_router(notifications.router)
app.include_router(dashboard.router)


@app.get("/health")
def health():
    return {"status": "ok", "clinic": config.CLINIC_NAME}
