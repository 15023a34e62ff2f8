"""
Redirect-driven configuration flow.

Modules:
- inputs: resolve continuation state and flow data from a request
- completion: success/error completions and delegation redirects
- handler: settings state machine over named configuration states
"""

from .completion import complete_with_error, complete_with_success, get_self_url, redirect
from .handler import ConfigurationFlow, create_settings_manager
from .inputs import get_inputs

__all__ = [
    "ConfigurationFlow",
    "create_settings_manager",
    "get_inputs",
    "complete_with_success",
    "complete_with_error",
    "redirect",
    "get_self_url",
]
