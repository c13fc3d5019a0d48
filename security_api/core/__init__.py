from security_api.core.config import settings
from security_api.core.database import Base, Database, get_db
from security_api.core.security import (
    verify_password,
    get_password_hash,
    create_access_token,
    decode_token,
)
