from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from .config import settings
from .base import Base

engine = create_async_engine(settings.POSTGRES_DSN, pool_pre_ping=True)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

async def get_session():
    async with SessionLocal() as session:
        yield session

def import_models():
    # Registers every table on Base.metadata before create_all.
    from app.modules.directory import models as _directory  # noqa: F401
    from app.modules.payers import models as _payers  # noqa: F401
    from app.modules.network import models as _network  # noqa: F401
    from app.modules.availability import models as _availability  # noqa: F401
    from app.modules.appointments import models as _appointments  # noqa: F401
    from app.modules.audit import models as _audit  # noqa: F401

async def init_models():
    # In dev-only "create_all" mode the app owns the schema; otherwise migrations do.
    if settings.DB_MANAGE == "create_all":
        import_models()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

async def dispose_engine():
    await engine.dispose()
