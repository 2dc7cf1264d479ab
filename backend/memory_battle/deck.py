"""
Генерация колоды: пары карт из случайных символов палитры.
"""
import random
from dataclasses import dataclass

from .constants import CARD_SYMBOLS, GRID_CONFIGS


@dataclass
class Card:
    id: int
    symbol_id: int
    symbol: str
    is_flipped: bool = False
    is_matched: bool = False

    @property
    def is_revealed(self) -> bool:
        return self.is_flipped or self.is_matched

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "symbolId": self.symbol_id,
            "symbol": self.symbol,
            "isFlipped": self.is_flipped,
            "isMatched": self.is_matched,
        }

    def public_dict(self) -> dict:
        """Закрытая карта отдаётся без символа."""
        revealed = self.is_revealed
        return {
            "id": self.id,
            "isFlipped": self.is_flipped,
            "isMatched": self.is_matched,
            "symbol": self.symbol if revealed else None,
            "symbolId": self.symbol_id if revealed else None,
        }


def generate_deck(grid_size: str, rng: random.Random | None = None) -> list[Card]:
    """
    Перемешанная колода для размера поля: total_pairs символов по две карты.
    ValueError для неизвестного размера.
    """
    config = GRID_CONFIGS.get(grid_size)
    if config is None:
        raise ValueError(f"Invalid grid size: {grid_size}")
    rng = rng or random
    symbols = list(CARD_SYMBOLS)
    rng.shuffle(symbols)
    cards: list[Card] = []
    for i, sym in enumerate(symbols[: config["total_pairs"]]):
        cards.append(Card(id=i * 2, symbol_id=sym["id"], symbol=sym["symbol"]))
        cards.append(Card(id=i * 2 + 1, symbol_id=sym["id"], symbol=sym["symbol"]))
    rng.shuffle(cards)
    return cards
