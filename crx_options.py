#!/usr/bin/env python3
"""Browser session options carrying packed extensions.

Extensions travel inside the ``goog:chromeOptions`` capability as padded
standard base64 of the full CRX file. Empty fields are left out of the
payload; ``w3c`` is always sent.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import crx_pack

CAPABILITIES_KEY = "goog:chromeOptions"

# Legacy key accepted by older drivers
DEPRECATED_CAPABILITIES_KEY = "chromeOptions"


def _without_empty(payload: Dict[str, Any]) -> Dict[str, Any]:
    # None, "", 0 and empty containers are omitted; False is a real value
    return {
        key: value
        for key, value in payload.items()
        if value is not None and (value is False or value)
    }


@dataclass
class DeviceMetrics:
    width: int
    height: int
    pixel_ratio: float
    # The driver treats an unset value as True
    touch: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "width": self.width,
            "height": self.height,
            "pixelRatio": self.pixel_ratio,
        }
        if self.touch is not None:
            payload["touch"] = self.touch
        return payload


@dataclass
class MobileEmulation:
    """Either device_name alone, or device_metrics with user_agent."""

    device_name: str = ""
    device_metrics: Optional[DeviceMetrics] = None
    user_agent: str = ""

    def __post_init__(self) -> None:
        if self.device_name and (self.device_metrics or self.user_agent):
            raise ValueError("device_name cannot be combined with device_metrics or user_agent")

    def to_dict(self) -> Dict[str, Any]:
        payload = _without_empty({"deviceName": self.device_name, "userAgent": self.user_agent})
        if self.device_metrics is not None:
            payload["deviceMetrics"] = self.device_metrics.to_dict()
        return payload


@dataclass
class PerfLoggingPreferences:
    enable_network: Optional[bool] = None
    enable_page: Optional[bool] = None
    enable_timeline: Optional[bool] = None
    # Comma-separated tracing categories; empty disables tracing
    trace_categories: str = ""
    buffer_usage_reporting_interval: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return _without_empty(
            {
                "enableNetwork": self.enable_network,
                "enablePage": self.enable_page,
                "enableTimeline": self.enable_timeline,
                "traceCategories": self.trace_categories,
                "bufferUsageReportingInterval": self.buffer_usage_reporting_interval,
            }
        )


@dataclass
class ChromeOptions:
    binary: str = ""
    args: List[str] = field(default_factory=list)
    exclude_switches: List[str] = field(default_factory=list)
    extensions: List[str] = field(default_factory=list)
    local_state: Dict[str, Any] = field(default_factory=dict)
    prefs: Dict[str, Any] = field(default_factory=dict)
    # Keep the browser running after the driver quits
    detach: Optional[bool] = None
    debugger_address: str = ""
    minidump_path: str = ""
    mobile_emulation: Optional[MobileEmulation] = None
    perf_logging_prefs: Optional[PerfLoggingPreferences] = None
    window_types: List[str] = field(default_factory=list)
    android_package: str = ""
    w3c: bool = True

    def add_extension(self, path: Path) -> None:
        """Attach an existing .crx file."""
        self.add_extension_bytes(Path(path).read_bytes())

    def add_extension_bytes(self, data: bytes) -> None:
        self.extensions.append(base64.b64encode(data).decode("ascii"))

    def add_unpacked_extension(
        self, directory: Path, private_key: Optional[object] = None
    ) -> object:
        """Pack a directory and attach it; returns the signing key."""
        if private_key is None:
            data, private_key = crx_pack.package_with_new_key(Path(directory))
        else:
            data = crx_pack.package_with_key(Path(directory), private_key)
        self.add_extension_bytes(data)
        return private_key

    def to_dict(self) -> Dict[str, Any]:
        options = _without_empty(
            {
                "binary": self.binary,
                "args": list(self.args),
                "excludeSwitches": list(self.exclude_switches),
                "extensions": list(self.extensions),
                "localState": dict(self.local_state),
                "prefs": dict(self.prefs),
                "detach": self.detach,
                "debuggerAddress": self.debugger_address,
                "minidumpPath": self.minidump_path,
                "windowTypes": list(self.window_types),
                "androidPackage": self.android_package,
            }
        )
        # Nested option blocks are sent whenever they are set, even if empty
        if self.mobile_emulation is not None:
            options["mobileEmulation"] = self.mobile_emulation.to_dict()
        if self.perf_logging_prefs is not None:
            options["perfLoggingPrefs"] = self.perf_logging_prefs.to_dict()
        options["w3c"] = self.w3c
        return options

    def to_capabilities(self, legacy: bool = False) -> Dict[str, Any]:
        key = DEPRECATED_CAPABILITIES_KEY if legacy else CAPABILITIES_KEY
        return {key: self.to_dict()}
