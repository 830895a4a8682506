"""
Application context — everything one running app instance owns.

Built once per app (or per test) and stored on `app.state.context`; request
handlers reach it through dependencies rather than module globals.
"""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from alerts.websocket import AlertRelay
from core.config import Settings
from core.security import RateLimiter
from db.session import Base, build_engine, build_session_factory
from llm.providers import ProviderRegistry, build_providers


@dataclass
class AppContext:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    relay: AlertRelay
    providers: ProviderRegistry
    rate_limiter: RateLimiter

    @classmethod
    def from_settings(cls, settings: Settings) -> "AppContext":
        engine = build_engine(settings)
        return cls(
            settings=settings,
            engine=engine,
            session_factory=build_session_factory(engine),
            relay=AlertRelay(),
            providers=build_providers(settings),
            rate_limiter=RateLimiter.from_settings(settings),
        )

    async def create_tables(self) -> None:
        # Needs db.models imported so every table is registered on Base.metadata.
        import db.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def aclose(self) -> None:
        await self.engine.dispose()
