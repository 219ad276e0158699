"""Development-only routes. Mounted when DEBUG_ROUTES_ENABLED is set."""
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from cortapau import config
from cortapau.database import get_db
from cortapau.models.domain import Solicitation
from cortapau.models.enums import Category, SolicitationStatus
from cortapau.services.auth import get_or_create_user
from cortapau.services.event_log import ChangeSet
from cortapau.api.routes import get_service
from cortapau.services.solicitations import SolicitationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/debug")

TEST_USERS = [
    ("teste", "Usuário teste"),
    ("lucas@teste.com", "Lucas (teste)"),
]


@router.post("/create-test-users")
def create_test_users(db: Session = Depends(get_db)):
    """Make sure the test accounts exist (password: teste)."""
    users = [get_or_create_user(db, login=login, name=name, password="teste") for login, name in TEST_USERS]
    return {
        "status": "ok",
        "users": [{"id": u.id, "nome": u.name, "login": u.login, "role": u.role.value} for u in users]
    }


@router.post("/seed")
def seed(db: Session = Depends(get_db), service: SolicitationService = Depends(get_service)):
    """Populate an empty database with two sample solicitations around São Paulo."""
    if db.query(Solicitation).count() > 0:
        return {"status": "ok", "message": "Solicitations already exist, seed skipped."}

    author = get_or_create_user(db, login=config.DEMO_AUTHOR_LOGIN, name=config.DEMO_AUTHOR_NAME)

    service.create(
        title="Risco Elétrico em escola",
        description="Árvore encostando na fiação em frente à escola.",
        category=Category.ELECTRICAL_RISK,
        latitude=-23.5505,
        longitude=-46.6333,
        author_id=author.id
    )
    leaning = service.create(
        title="Risco de queda em via pública",
        description="Árvore inclinada em direção à via pública.",
        category=Category.FALL_RISK,
        latitude=-23.5614,
        longitude=-46.6559,
        author_id=author.id
    )
    service.patch(leaning.id, ChangeSet(status=SolicitationStatus.IN_PROGRESS))

    logger.info("Seeded sample solicitations")
    return {"status": "ok", "message": "Seed created."}
