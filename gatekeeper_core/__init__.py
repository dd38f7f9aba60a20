"""
Gatekeeper core package.

This package holds the verification pipeline, its policy model and the
helpers it drives (permission checks, intro lookup, role changes, feedback).
Discord client wiring lives in the adapter layer.
"""

from .config import RuntimeConfig
from .state import LifecycleState
from .policy import UNSET, VerificationPolicy
from .policy_store import PolicyStore
from .permissions import PermissionCheck, PermissionGuard
from .intro_lookup import IntroLookup
from .roles import RoleChanges, RoleMutator
from .templates import render_template
from .feedback import FeedbackManager
from .journal import AttemptJournal
from .engine import Rejection, VerificationAttempt, VerificationEngine

__all__ = [
    "RuntimeConfig",
    "LifecycleState",
    "UNSET",
    "VerificationPolicy",
    "PolicyStore",
    "PermissionCheck",
    "PermissionGuard",
    "IntroLookup",
    "RoleChanges",
    "RoleMutator",
    "render_template",
    "FeedbackManager",
    "AttemptJournal",
    "Rejection",
    "VerificationAttempt",
    "VerificationEngine",
]
