from collections.abc import AsyncGenerator
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings

# asyncpg does not accept libpq params like sslmode; strip them and pass ssl via connect_args.
parsed = urlparse(settings.database_url)
scheme = "postgresql+asyncpg" if parsed.scheme in ("postgres", "postgresql") else parsed.scheme
query = parse_qs(parsed.query, keep_blank_values=True)
require_ssl = query.pop("sslmode", ["disable"])[0] in ("require", "verify-ca", "verify-full")
query.pop("channel_binding", None)
new_query = urlencode(query, doseq=True)
async_database_url = urlunparse((scheme, parsed.netloc, parsed.path, parsed.params, new_query, parsed.fragment))

_engine_kwargs: dict = {"echo": settings.env == "development", "pool_pre_ping": True}
if scheme.startswith("postgresql"):
    _engine_kwargs.update(pool_size=5, max_overflow=10)
    if require_ssl:
        _engine_kwargs["connect_args"] = {"ssl": True}

engine = create_async_engine(async_database_url, **_engine_kwargs)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
