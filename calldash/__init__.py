"""Core (UI-agnostic) call-feed dashboard logic.

This package contains:
- feed acquisition (HTTP CSV -> typed records -> pandas)
- the local cache and the refresh controller around it
- zone/date filter composition
- aggregate compute functions (JSON-serializable payloads)
- chart helpers (Altair -> Vega-Lite spec dict)
"""
