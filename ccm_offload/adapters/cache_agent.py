"""Access to the Configuration Manager client's content cache."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from ccm_offload.adapters.powershell import CommandError, ps_quote, run_powershell
from ccm_offload.domain.models import CacheElement

CCM_NAMESPACE = r"root\ccm\SoftMgmtAgent"

LIST_ENTRIES_SCRIPT = (
    f"Get-CimInstance -Namespace '{CCM_NAMESPACE}' -ClassName CacheInfoEx | "
    "ForEach-Object { [pscustomobject]@{ "
    "CacheId = $_.CacheId; "
    "ContentId = $_.ContentId; "
    "ContentVersion = $_.ContentVer; "
    "Location = $_.Location; "
    "LastReferenced = $_.LastReferenced.ToUniversalTime().ToString('o'); "
    "PersistInCache = [bool]$_.PersistInCache; "
    "PeerCaching = [bool]$_.PeerCaching "
    "} } | ConvertTo-Json -Compress"
)

DELETE_ENTRY_SCRIPT = (
    "$cache = (New-Object -ComObject UIResource.UIResourceMgr).GetCacheInfo(); "
    "$cache.DeleteCacheElement({element_id})"
)

REMOVE_RECORD_SCRIPT = (
    f"Get-CimInstance -Namespace '{CCM_NAMESPACE}' -ClassName CacheInfoEx "
    "-Filter (\"CacheId='{{0}}'\" -f {element_id}) | Remove-CimInstance"
)

CACHE_ROOT_SCRIPT = (
    f"(Get-CimInstance -Namespace '{CCM_NAMESPACE}' -ClassName CacheConfig).Location"
)


class AgentCommandError(CommandError):
    """Raised when the agent's management interface rejects a request."""


class CacheAgent(Protocol):
    def list_entries(self) -> list[CacheElement]: ...

    def delete_entry(self, element_id: str) -> None: ...

    def remove_record(self, element_id: str) -> None: ...

    def get_cache_root_path(self) -> Path: ...


def _parse_timestamp(value: str | None) -> datetime:
    if not value:
        return datetime.min.replace(tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_cache_entries(raw: str) -> list[CacheElement]:
    """Parse ``ConvertTo-Json`` output into cache elements.

    PowerShell emits nothing for an empty pipeline and a bare object, not a
    one-item array, for a single result.
    """
    if not raw.strip():
        return []
    payload: Any = json.loads(raw)
    if isinstance(payload, dict):
        payload = [payload]
    if not isinstance(payload, list):
        raise ValueError("Cache listing must be a JSON object or array.")

    entries: list[CacheElement] = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        entries.append(
            CacheElement(
                element_id=str(item.get("CacheId") or ""),
                content_id=str(item.get("ContentId") or ""),
                content_version=int(item.get("ContentVersion") or 0),
                location=Path(str(item.get("Location") or "")),
                last_referenced=_parse_timestamp(item.get("LastReferenced")),
                persist_in_cache=bool(item.get("PersistInCache")),
                peer_caching=bool(item.get("PeerCaching")),
            )
        )
    return entries


class PowerShellCacheAgent:
    """Cache agent backed by the client's WMI classes and COM resource manager."""

    def list_entries(self) -> list[CacheElement]:
        return parse_cache_entries(run_powershell(LIST_ENTRIES_SCRIPT, error_cls=AgentCommandError))

    def delete_entry(self, element_id: str) -> None:
        run_powershell(
            DELETE_ENTRY_SCRIPT.format(element_id=ps_quote(element_id)),
            error_cls=AgentCommandError,
        )

    def remove_record(self, element_id: str) -> None:
        run_powershell(
            REMOVE_RECORD_SCRIPT.format(element_id=ps_quote(element_id)),
            error_cls=AgentCommandError,
        )

    def get_cache_root_path(self) -> Path:
        location = run_powershell(CACHE_ROOT_SCRIPT, error_cls=AgentCommandError).strip()
        if not location:
            raise AgentCommandError(["powershell", CACHE_ROOT_SCRIPT], 0, "cache location is not configured")
        return Path(location)
