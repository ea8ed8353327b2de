import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from brewops.config import settings
from brewops.db import engine
from brewops.errors import install_error_handlers
from brewops.models import Base
from brewops.routers import batches, inventory, invoices, kegs
from brewops.services.package_types import load_package_table


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )


configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.create_tables_on_startup:
        Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title='Brewery Operations Ledger', lifespan=lifespan)
app.state.package_table = load_package_table(settings.package_types_path)

install_error_handlers(app)

app.include_router(batches.router)
app.include_router(inventory.router)
app.include_router(kegs.router)
app.include_router(invoices.router)


@app.get('/health')
def health() -> dict:
    return {'status': 'ok'}
