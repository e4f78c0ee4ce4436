import math
from typing import List, Set, Tuple


def longest_common_substring(a: str, b: str) -> int:
    """Length of the longest contiguous run shared by ``a`` and ``b``."""
    if not a or not b:
        return 0
    best = 0
    prev = [0] * (len(b) + 1)
    for i in range(1, len(a) + 1):
        cur = [0] * (len(b) + 1)
        for j in range(1, len(b) + 1):
            if a[i - 1] == b[j - 1]:
                cur[j] = prev[j - 1] + 1
                if cur[j] > best:
                    best = cur[j]
        prev = cur
    return best


def similarity_score(left: str, right: str, token_accept_ratio: float = 0.5) -> float:
    """Token overlap score in ``[0, 1]`` built on substring overlap.

    Each token of ``left`` pairs with the unused token of ``right`` that
    maximises ``LCS / min(len)``; pairs above ``token_accept_ratio`` add that
    ratio. The sum is divided by the mean token count of both sides.
    """
    a_tokens: List[str] = [t for t in left.split() if t]
    b_tokens: List[str] = [t for t in right.split() if t]
    if not a_tokens and not b_tokens:
        return 0.0

    used: Set[int] = set()
    weight = 0.0
    for a in a_tokens:
        best_ratio = 0.0
        best_index = -1
        for idx, b in enumerate(b_tokens):
            if idx in used:
                continue
            ratio = longest_common_substring(a, b) / min(len(a), len(b))
            if ratio > best_ratio:
                best_ratio = ratio
                best_index = idx
        if best_ratio > token_accept_ratio and best_index != -1:
            weight += best_ratio
            used.add(best_index)
    return weight / ((len(a_tokens) + len(b_tokens)) / 2)


def price_boundary(price: float) -> Tuple[int, int]:
    """Return the ``(floor, ceil)`` window used to pre-filter search results by price."""
    return math.floor(price), math.ceil(price)
