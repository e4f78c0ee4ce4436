from .layouts import DmReceiptLayout, RossmannReceiptLayout
from .matcher import CodeLookupStrategy, ReceiptMatcher, SearchMatchStrategy
from .sanitize import TokenCorrector, sanitize_product_name
from .similarity import longest_common_substring, price_boundary, similarity_score

__all__ = [
    "CodeLookupStrategy",
    "DmReceiptLayout",
    "ReceiptMatcher",
    "RossmannReceiptLayout",
    "SearchMatchStrategy",
    "TokenCorrector",
    "longest_common_substring",
    "price_boundary",
    "sanitize_product_name",
    "similarity_score",
]
