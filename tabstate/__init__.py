"""
Active-tab state management for multi-tab UI surfaces.

Submodules provide tab definitions and registry filtering, security gating,
content caching, the lifecycle hook pipeline and navigation synchronization.
They are orchestrated per UI instance by `tabstate.component.TabsComponent`.
"""
from __future__ import annotations

from tabstate.component import TabsComponent, TabServices, build_component, build_services
from tabstate.config import TabsSettings, load_settings
from tabstate.results import Err, ErrorKind, LoadOk, SwitchOk, SyncResult
from tabstate.services.navigation import Location
from tabstate.tabs.definition import Cancel, RemoteComponent, TabDefinition

__all__ = [
    "Cancel",
    "Err",
    "ErrorKind",
    "LoadOk",
    "Location",
    "RemoteComponent",
    "SwitchOk",
    "SyncResult",
    "TabDefinition",
    "TabServices",
    "TabsComponent",
    "TabsSettings",
    "build_component",
    "build_services",
    "load_settings",
]
