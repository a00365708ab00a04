"""Category management: at most three user-defined labels, kept in display order."""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from .models import MAX_CATEGORIES, Category
from .storage import StorageService

logger = logging.getLogger("production_timer.categories")


class CategoryLimitError(Exception):
    """Raised when adding beyond MAX_CATEGORIES."""


class CategoryNotFoundError(KeyError):
    """Raised when a category id does not exist."""


def _clean_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValueError("Category name must not be empty")
    return name


def _renumber(categories: list[Category]) -> list[Category]:
    return [c.copy_with(order=i) for i, c in enumerate(categories)]


class CategoryService:
    """Holds the category list in memory and writes every change through."""

    def __init__(self, storage: StorageService):
        self._storage = storage
        self._categories: list[Category] = []

    @property
    def categories(self) -> list[Category]:
        return list(self._categories)

    def get(self, category_id: str) -> Optional[Category]:
        for category in self._categories:
            if category.id == category_id:
                return category
        return None

    def first_id(self) -> Optional[str]:
        return self._categories[0].id if self._categories else None

    async def load(self) -> list[Category]:
        """Load from storage, seeding the defaults on first run."""
        categories = await self._storage.load_categories()
        if not categories:
            categories = Category.default_categories()
            await self._storage.save_categories(categories)
            logger.info("Seeded default categories")
        self._categories = sorted(categories, key=lambda c: c.order)
        return self.categories

    async def add(self, name: str, color_value: int, icon: str) -> Category:
        if len(self._categories) >= MAX_CATEGORIES:
            raise CategoryLimitError(f"At most {MAX_CATEGORIES} categories are allowed")

        category = Category(
            id=str(uuid.uuid4()),
            name=_clean_name(name),
            color_value=color_value,
            icon=icon,
            order=len(self._categories),
        )
        new_list = [*self._categories, category]
        await self._storage.save_categories(new_list)
        self._categories = new_list
        logger.info(f"Added category '{category.name}'")
        return category

    async def update(self, category_id: str, name: str, color_value: int, icon: str) -> Category:
        index = next((i for i, c in enumerate(self._categories) if c.id == category_id), None)
        if index is None:
            raise CategoryNotFoundError(category_id)

        updated = self._categories[index].copy_with(
            name=_clean_name(name),
            color_value=color_value,
            icon=icon,
        )
        new_list = list(self._categories)
        new_list[index] = updated
        await self._storage.save_categories(new_list)
        self._categories = new_list
        return updated

    async def delete(self, category_id: str) -> None:
        new_list = _renumber([c for c in self._categories if c.id != category_id])
        await self._storage.save_categories(new_list)
        self._categories = new_list

    async def reorder(self, old_index: int, new_index: int) -> list[Category]:
        count = len(self._categories)
        if not (0 <= old_index < count and 0 <= new_index < count):
            raise IndexError(f"Category index out of range (0-{count - 1})")

        new_list = list(self._categories)
        category = new_list.pop(old_index)
        new_list.insert(new_index, category)
        new_list = _renumber(new_list)
        await self._storage.save_categories(new_list)
        self._categories = new_list
        return self.categories
