import random
from typing import Iterable, List, Optional

from .models import CatalogItem


def sample(pool: Iterable[CatalogItem], n: int, rng: Optional[random.Random] = None) -> List[CatalogItem]:
    """Pick up to n distinct visible and in-stock items uniformly at random.
    Only a copy of the eligible subset is shuffled; the caller's pool is untouched.
    """
    if n <= 0:
        return []
    seen = set()
    eligible: List[CatalogItem] = []
    for item in pool:
        if not item.eligible or item.id in seen:
            continue
        seen.add(item.id)
        eligible.append(item)
    (rng or random).shuffle(eligible)
    return eligible[:n]
