# cafe/repos/checkout_attempt_repo.py
from datetime import datetime
from typing import List
from sqlalchemy import select
from sqlalchemy.orm import Session

from cafe.data.models.checkout_attempt import CheckoutAttemptModel


class CheckoutAttemptRepo:
    def __init__(self, db: Session):
        self.db = db

    def get(self, attempt_id: int) -> CheckoutAttemptModel | None:
        return self.db.get(CheckoutAttemptModel, attempt_id)

    def get_by_key(self, idempotency_key: str) -> CheckoutAttemptModel | None:
        return self.db.execute(
            select(CheckoutAttemptModel).where(CheckoutAttemptModel.idempotency_key == idempotency_key)
        ).scalar_one_or_none()

    def create(self, attempt: CheckoutAttemptModel) -> CheckoutAttemptModel:
        self.db.add(attempt)
        self.db.commit()
        self.db.refresh(attempt)
        return attempt

    def save(self, attempt: CheckoutAttemptModel) -> CheckoutAttemptModel:
        self.db.add(attempt)
        self.db.commit()
        self.db.refresh(attempt)
        return attempt

    def list_by_status(self, status: str, max_attempts: int | None = None, limit: int = 100) -> List[CheckoutAttemptModel]:
        query = select(CheckoutAttemptModel).where(CheckoutAttemptModel.status == status)
        if max_attempts is not None:
            query = query.where(CheckoutAttemptModel.attempts < max_attempts)

        return list(
            self.db.execute(query.order_by(CheckoutAttemptModel.created_at).limit(limit)).scalars().all()
        )

    def list_stale(
        self,
        status: str,
        updated_before: datetime,
        created_after: datetime,
        max_attempts: int | None = None,
        limit: int = 100,
    ) -> List[CheckoutAttemptModel]:
        query = select(CheckoutAttemptModel).where(
            CheckoutAttemptModel.status == status,
            CheckoutAttemptModel.updated_at < updated_before,
            CheckoutAttemptModel.created_at > created_after,
        )
        if max_attempts is not None:
            query = query.where(CheckoutAttemptModel.attempts < max_attempts)

        return list(
            self.db.execute(query.order_by(CheckoutAttemptModel.created_at).limit(limit)).scalars().all()
        )

    def rollback(self):
        self.db.rollback()
