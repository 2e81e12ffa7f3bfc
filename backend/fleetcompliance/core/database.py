from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from fleetcompliance.core.config import Settings, settings


def build_engine(config: Settings) -> AsyncEngine:
    options = {"echo": config.DEBUG}
    if config.DATABASE_URL.startswith("postgresql"):
        options["pool_size"] = config.DB_POOL_SIZE
        options["pool_pre_ping"] = True
    return create_async_engine(config.DATABASE_URL, **options)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Create Async Engine (connections are opened lazily)
engine = build_engine(settings)

# Create SessionLocal
AsyncSessionLocal = build_session_factory(engine)

# Base class for models
Base = declarative_base()


# Dependency for FastAPI routes
async def get_db():
    async with AsyncSessionLocal() as session:
        yield session


def get_session_factory() -> async_sessionmaker:
    return AsyncSessionLocal


# Called on app startup
async def init_db(bind: AsyncEngine = engine):
    import fleetcompliance.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
