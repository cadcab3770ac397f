from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from presale_api.settings import Settings
from presale_api.logging_ import configure_logging
from presale_api.db import Base, engine
from presale_api.migrate import ensure_columns
from presale_api.routers import health, presale, slips, events

settings = Settings()
configure_logging(settings.log_level)

app = FastAPI(title="presale-api", version=settings.version)

origins = settings.cors_allow_origins
if isinstance(origins, str):
    origins = [o.strip() for o in origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Base.metadata.create_all(bind=engine)
ensure_columns()

app.include_router(health.router, tags=["health"])
app.include_router(presale.router, prefix="/api", tags=["presale"])
app.include_router(slips.router, prefix="/api", tags=["slips"])
app.include_router(events.router, prefix="/api", tags=["events"])


@app.get("/")
def root():
    return {"service": "presale-api", "version": settings.version}
