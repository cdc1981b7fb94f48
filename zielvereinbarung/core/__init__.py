from zielvereinbarung.core.config import settings
from zielvereinbarung.core.database import get_db, Base, get_db_session
from zielvereinbarung.core.security import (
    verify_password,
    get_password_hash,
)
