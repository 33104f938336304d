"""Interceptor tier — wraps host APIs behind permission requests."""

from jade_guard.interceptor.host import Host
from jade_guard.interceptor.interceptor import INSTALL_MARKER, Interceptor
from jade_guard.interceptor.wrappers import (
    GuardedProxy,
    guard_callback,
    guard_read,
    guard_request,
    guard_xhr_class,
)

__all__ = [
    "GuardedProxy",
    "Host",
    "INSTALL_MARKER",
    "Interceptor",
    "guard_callback",
    "guard_read",
    "guard_request",
    "guard_xhr_class",
]
