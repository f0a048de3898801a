"""
Shared API state - catalog, GTM repository and open sessions.

Everything here is process-local; a restart drops open sessions but not
committed motions, which live in the GTM store.
"""
import logging
import uuid
from datetime import date
from typing import Optional

from ..config.settings import get_settings
from ..services.catalog_service import CatalogReader, CsvCatalog
from ..services.gtm_repository import GtmRepository, JsonGtmRepository
from ..workflow.session import PriceChangeSession

logger = logging.getLogger(__name__)


class SessionStore:
    """Open workflow sessions keyed by id."""

    def __init__(self):
        self._sessions: dict[str, PriceChangeSession] = {}

    def add(self, session: PriceChangeSession) -> str:
        session_id = uuid.uuid4().hex
        self._sessions[session_id] = session
        return session_id

    def get(self, session_id: str) -> Optional[PriceChangeSession]:
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> Optional[PriceChangeSession]:
        return self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)


sessions = SessionStore()

_catalog: Optional[CatalogReader] = None
_repository: Optional[GtmRepository] = None
_today: Optional[date] = None


def configure(
    catalog: Optional[CatalogReader] = None,
    repository: Optional[GtmRepository] = None,
    today: Optional[date] = None
):
    """Swap in collaborators (tests, alternative stores) and drop open sessions."""
    global _catalog, _repository, _today, sessions
    _catalog = catalog
    _repository = repository
    _today = today
    sessions = SessionStore()


def get_catalog() -> CatalogReader:
    global _catalog
    if _catalog is None:
        _catalog = CsvCatalog(get_settings().catalog_csv)
    return _catalog


def get_repository() -> GtmRepository:
    global _repository
    if _repository is None:
        path = get_settings().gtm_store
        logger.info("Using GTM store at %s", path)
        _repository = JsonGtmRepository(path)
    return _repository


def get_sessions() -> SessionStore:
    return sessions


def get_today() -> date:
    return _today or date.today()
