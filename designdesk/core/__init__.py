"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from designdesk.core.clock import Clock, utc_now
from designdesk.core.exceptions import (
    ApplicationException,
    DomainException,
    InvalidStateTransitionException,
    ConcurrentModificationException,
    RepositoryException,
    ValidationException,
    ResourceNotFoundException,
    ConfigurationException,
    ExternalServiceException,
    NotificationException,
    WebhookVerificationException,
)

__all__ = [
    "Clock",
    "utc_now",
    "ApplicationException",
    "DomainException",
    "InvalidStateTransitionException",
    "ConcurrentModificationException",
    "RepositoryException",
    "ValidationException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "ExternalServiceException",
    "NotificationException",
    "WebhookVerificationException",
]
