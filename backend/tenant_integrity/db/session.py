from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from tenant_integrity.core.settings import settings

"""
DB Session.

Rôle (fonctionnel) :
- Construit l’engine SQLAlchemy async et la factory de sessions injectée dans TenancyHealthService.
- Le service ouvre une session par check (checks exécutés en parallèle) : la taille du pool
  doit couvrir TENANCY_MAX_CONCURRENCY.

Notes :
- expire_on_commit=False : les objets restent lisibles après commit (apply ligne à ligne).
- echo=False : pas de log SQL brut (on préfère les logs applicatifs en JSON).
"""


def build_engine(url: str) -> AsyncEngine:
    kwargs = {"echo": False}
    if not url.startswith("sqlite"):
        # Marge au-dessus du parallélisme des checks (API + scripts)
        kwargs.update(pool_size=max(5, settings.TENANCY_MAX_CONCURRENCY + 1), pool_pre_ping=True)
    return create_async_engine(url, **kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False)


# Engine + factory de l’application (DATABASE_URL)
engine = build_engine(settings.DATABASE_URL)
AsyncSessionLocal = build_session_factory(engine)
