"""
Base repository with strict shop isolation enforcement.

CRITICAL: All queries on shop-owned records are scoped by shop_id.
No query can read or mutate another shop's rows.
"""

import logging
from abc import ABC, abstractmethod
from typing import TypeVar, Generic, Optional

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from catalogwatch.db_base import Base
from catalogwatch.models.shop import Shop

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Base)


class ShopIsolationError(Exception):
    """Raised when shop isolation is violated."""
    pass


def get_shop_by_domain(db_session: Session, shop_domain: str) -> Optional[Shop]:
    """Look up an installed shop by its myshopify domain."""
    if not shop_domain:
        return None
    return (
        db_session.query(Shop)
        .filter(Shop.shop_domain == shop_domain.strip().lower())
        .first()
    )


class ShopScopedRepository(Generic[T], ABC):
    """
    Base repository with mandatory shop_id enforcement.

    All queries are automatically scoped by shop_id, and shop_id in
    caller-supplied data is ignored.
    """

    def __init__(self, db_session: Session, shop_id: str):
        if not shop_id:
            raise ValueError("shop_id is required and cannot be empty")

        self.db_session = db_session
        self.shop_id = shop_id
        self._model_class = self._get_model_class()

    @abstractmethod
    def _get_model_class(self) -> type:
        """Return the SQLAlchemy model class for this repository."""
        pass

    def _scoped_query(self):
        return self.db_session.query(self._model_class).filter(
            self._model_class.shop_id == self.shop_id
        )

    def _strip_shop_id(self, entity_data: dict, operation: str) -> dict:
        if "shop_id" in entity_data:
            provided = entity_data.pop("shop_id")
            if provided and provided != self.shop_id:
                logger.error(
                    "Shop ID mismatch detected",
                    extra={
                        "repository_shop_id": self.shop_id,
                        "provided_shop_id": provided,
                        "operation": operation,
                    },
                )
                raise ShopIsolationError(
                    f"Shop ID mismatch: repository scoped to {self.shop_id}, "
                    f"but operation attempted with {provided}"
                )
        return entity_data

    def get_by_id(self, entity_id: str) -> Optional[T]:
        return self._scoped_query().filter(self._model_class.id == entity_id).first()

    def create(self, entity_data: dict) -> T:
        """
        Create a new entity owned by the repository's shop.

        Raises:
            ShopIsolationError: If entity_data names a different shop
        """
        entity_data = self._strip_shop_id(dict(entity_data), "create")
        entity = self._model_class(shop_id=self.shop_id, **entity_data)
        self.db_session.add(entity)

        try:
            self.db_session.commit()
            self.db_session.refresh(entity)
        except SQLAlchemyError as e:
            self.db_session.rollback()
            logger.error(
                "Failed to create entity",
                extra={
                    "shop_id": self.shop_id,
                    "entity_type": self._model_class.__name__,
                    "error": str(e),
                },
            )
            raise

        logger.info(
            "Entity created",
            extra={
                "shop_id": self.shop_id,
                "entity_id": entity.id,
                "entity_type": self._model_class.__name__,
            },
        )
        return entity

    def update(self, entity_id: str, entity_data: dict) -> Optional[T]:
        """Update an entity of this shop. Returns None if not found."""
        entity_data = self._strip_shop_id(dict(entity_data), "update")

        entity = self.get_by_id(entity_id)
        if not entity:
            return None

        for key, value in entity_data.items():
            if hasattr(entity, key):
                setattr(entity, key, value)

        try:
            self.db_session.commit()
            self.db_session.refresh(entity)
        except SQLAlchemyError as e:
            self.db_session.rollback()
            logger.error(
                "Failed to update entity",
                extra={
                    "shop_id": self.shop_id,
                    "entity_id": entity_id,
                    "error": str(e),
                },
            )
            raise

        logger.info(
            "Entity updated",
            extra={
                "shop_id": self.shop_id,
                "entity_id": entity_id,
                "entity_type": self._model_class.__name__,
            },
        )
        return entity

    def delete(self, entity_id: str) -> bool:
        """Hard delete. Returns False if not found."""
        entity = self.get_by_id(entity_id)
        if not entity:
            return False

        try:
            self.db_session.delete(entity)
            self.db_session.commit()
        except SQLAlchemyError as e:
            self.db_session.rollback()
            logger.error(
                "Failed to delete entity",
                extra={
                    "shop_id": self.shop_id,
                    "entity_id": entity_id,
                    "error": str(e),
                },
            )
            raise

        logger.info(
            "Entity deleted",
            extra={
                "shop_id": self.shop_id,
                "entity_id": entity_id,
                "entity_type": self._model_class.__name__,
            },
        )
        return True

    def count(self) -> int:
        return self._scoped_query().count()
