from fastapi import FastAPI

from gbp_hub.api.v1.router import router as v1_router
from gbp_hub.core.telemetry import setup_logging, setup_telemetry

setup_logging()

app = FastAPI(title="GBP Hub API", version="0.1.0")

setup_telemetry(app)
app.include_router(v1_router)
