"""Infrastructure layer exports."""

from .cache import InMemoryResultCache, ResultCache
from .jobs import InMemoryJobRepository, JobRepository
from .llm import CompletionResult, OpenAIChatClient
from .locks import InMemoryLockCoordinator, LockCoordinator
from .scraper import ScrapedContent, WebScraper
from .usage import USAGE_LIMITS, InMemoryUsageGate, UsageGate

__all__ = [
    "CompletionResult",
    "InMemoryJobRepository",
    "InMemoryLockCoordinator",
    "InMemoryResultCache",
    "InMemoryUsageGate",
    "JobRepository",
    "LockCoordinator",
    "OpenAIChatClient",
    "ResultCache",
    "ScrapedContent",
    "USAGE_LIMITS",
    "UsageGate",
    "WebScraper",
]
