from .articles import ArticleLifecycleManager
from .availability import AvailabilityOrchestrator
from .lookup import IdentityLookup

__all__ = ["ArticleLifecycleManager", "AvailabilityOrchestrator", "IdentityLookup"]
