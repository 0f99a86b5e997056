from helix_workbench.session.monitor import SessionMonitor
from helix_workbench.session.orchestrator import DataLoadOrchestrator
from helix_workbench.session.redirect_guard import SessionRedirectGuard

__all__ = [
    "DataLoadOrchestrator",
    "SessionMonitor",
    "SessionRedirectGuard",
]
