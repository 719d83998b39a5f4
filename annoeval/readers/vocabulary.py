"""Category identity resolution during one ingestion pass."""

from __future__ import annotations

from annoeval.models import Category, normalize_label


class CategoryVocabulary:
    """
    Accumulates categories in first-seen order.

    Labels that normalize to the same key ("Car", "car", "CAR!") share one
    id, and the first spelling seen becomes the display name. Create one per
    ingestion call so concurrent ingestions never share state.

    Example:
        >>> vocab = CategoryVocabulary()
        >>> vocab.resolve("Car"), vocab.resolve("CAR!"), vocab.resolve("truck")
        (1, 1, 2)
        >>> [c.name for c in vocab.categories]
        ['Car', 'truck']
    """

    def __init__(self) -> None:
        self._ids: dict[str, int] = {}
        self._categories: list[Category] = []

    def resolve(self, label: str) -> int:
        """Return the category id for a label, registering it if new."""
        key = normalize_label(label)
        category_id = self._ids.get(key)
        if category_id is None:
            category_id = len(self._categories) + 1
            self._ids[key] = category_id
            self._categories.append(Category(id=category_id, name=label))
        return category_id

    @property
    def categories(self) -> list[Category]:
        return list(self._categories)

    def __len__(self) -> int:
        return len(self._categories)
