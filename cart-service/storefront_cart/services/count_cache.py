from collections import OrderedDict
from typing import Optional
import logging

logger = logging.getLogger(__name__)


class CartCountCache:
    """Локальный кэш количества товаров в корзине по пользователям.

    Кэш только подсказка: мутации сбрасывают запись, а не обновляют её.
    Чтение берёт snapshot() до похода в хранилище и передаёт его в set();
    если между ними пользователь был сброшен, значение не кэшируется.
    """

    def __init__(self, max_entries: int = 10000):
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self._counts: "OrderedDict[str, int]" = OrderedDict()

        # номер последнего сброса по пользователю
        self._invalidated: "OrderedDict[str, int]" = OrderedDict()
        self._clock = 0
        # максимальный номер среди вытесненных из _invalidated
        self._floor = 0

    def snapshot(self) -> int:
        return self._clock

    def get(self, user_id: str) -> Optional[int]:
        count = self._counts.get(user_id)
        if count is not None:
            self._counts.move_to_end(user_id)
        return count

    def set(self, user_id: str, count: int, snapshot: Optional[int] = None) -> bool:
        """Кэширует значение; False, если чтение устарело относительно snapshot"""
        if snapshot is not None and self._invalidated.get(user_id, self._floor) > snapshot:
            logger.debug(f"Skipped stale cart count for user {user_id}")
            return False

        self._counts[user_id] = count
        self._counts.move_to_end(user_id)
        while len(self._counts) > self.max_entries:
            evicted, _ = self._counts.popitem(last=False)
            logger.debug(f"Evicted cart count for user {evicted}")
        return True

    def invalidate(self, user_id: str) -> None:
        self._counts.pop(user_id, None)

        self._clock += 1
        self._invalidated[user_id] = self._clock
        self._invalidated.move_to_end(user_id)
        while len(self._invalidated) > self.max_entries:
            _, generation = self._invalidated.popitem(last=False)
            self._floor = max(self._floor, generation)

    def clear(self) -> None:
        self._counts.clear()

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._counts

    def __len__(self) -> int:
        return len(self._counts)
