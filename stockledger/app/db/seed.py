from __future__ import annotations

import os

from sqlalchemy import select

from stockledger.app.core.logging import configure_logging, get_logger
from stockledger.app.db.session import SessionLocal
from stockledger.app.db.models.models_v1 import User
from stockledger.app.db.models.core_types import Role

logger = get_logger("seed")


def run_seed() -> None:
    db = SessionLocal()
    try:
        email = os.getenv("SEED_ADMIN_EMAIL", "admin@stockledger.local")
        user = db.scalar(select(User).where(User.email == email))
        if not user:
            user = User(name="ADMIN", email=email, role=Role.admin, active=True)
            db.add(user)
            db.commit()

        logger.info("seed ok", extra={"admin_id": user.id, "email": email})
    finally:
        db.close()


if __name__ == "__main__":
    configure_logging()
    run_seed()
