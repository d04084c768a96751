"""
Custom exceptions for the product research system
"""

from typing import Optional


class ResearchSystemError(Exception):
    """Base exception for research system"""
    pass


class ConfigurationError(ResearchSystemError):
    """Configuration related errors"""
    pass


class ProviderError(ResearchSystemError):
    """Errors raised by an external search/extract/scrape provider"""
    def __init__(self, message: str, provider: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class CriticalProviderError(ProviderError):
    """Unrecoverable provider failure; the run must abort"""
    reason = "critical"


class AuthenticationError(CriticalProviderError):
    """Provider rejected the credentials (401/403)"""
    reason = "auth"


class BillingError(CriticalProviderError):
    """Provider refused the call for billing reasons (402)"""
    reason = "billing"


class RateLimitError(ProviderError):
    """Rate limit exceeded (429)"""
    pass


class SearchFailure(ProviderError):
    """Transient search failure; the query is skipped"""
    pass


class ExtractFailure(ProviderError):
    """Transient extraction failure; the category is retried next iteration"""
    pass


class BudgetExhausted(ResearchSystemError):
    """Time, call or source ceiling reached"""
    def __init__(self, message: str, resource: str):
        super().__init__(message)
        self.resource = resource


class NoProgress(ResearchSystemError):
    """Consecutive collect passes produced no new URLs"""
    def __init__(self, message: str, empty_passes: int):
        super().__init__(message)
        self.empty_passes = empty_passes


class StatusTransitionError(ResearchSystemError):
    """Illegal automation_status transition"""
    pass
