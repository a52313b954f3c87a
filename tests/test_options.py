from __future__ import annotations

import base64
import json
from pathlib import Path

import pytest

import crx_crypto
import crx_options
import crx_verify


def test_defaults_only_carry_w3c() -> None:
    options = crx_options.ChromeOptions()
    assert options.to_capabilities() == {"goog:chromeOptions": {"w3c": True}}
    assert options.to_capabilities(legacy=True) == {"chromeOptions": {"w3c": True}}


def test_add_unpacked_extension_with_key(minimal_extension: Path, test_key) -> None:
    options = crx_options.ChromeOptions(args=["--headless=new"])
    returned = options.add_unpacked_extension(minimal_extension, test_key)
    assert returned is test_key

    payload = options.to_capabilities()["goog:chromeOptions"]
    assert payload["args"] == ["--headless=new"]
    (encoded,) = payload["extensions"]
    data = base64.b64decode(encoded, validate=True)
    assert data[:4] == b"Cr24"
    assert crx_verify.verify_container(data, public_keys=[test_key.public_key()]).passed


def test_add_unpacked_extension_generates_key(minimal_extension: Path) -> None:
    options = crx_options.ChromeOptions()
    key = options.add_unpacked_extension(minimal_extension)
    data = base64.b64decode(options.extensions[0])
    header = crx_verify.parse_container(data).header
    assert header.sha256_with_rsa[0].public_key == crx_crypto.public_key_der(key)


def test_add_extension_reads_file(tmp_path: Path) -> None:
    path = tmp_path / "ext.crx"
    path.write_bytes(b"Cr24payload")
    options = crx_options.ChromeOptions()
    options.add_extension(path)
    assert options.extensions == [base64.b64encode(b"Cr24payload").decode("ascii")]


def test_full_payload_uses_driver_keys() -> None:
    options = crx_options.ChromeOptions(
        binary="/usr/bin/chromium",
        exclude_switches=["enable-automation"],
        local_state={"browser.enabled_labs_experiments": []},
        prefs={"download.default_directory": "/tmp"},
        detach=False,
        debugger_address="127.0.0.1:9222",
        minidump_path="/tmp/dumps",
        mobile_emulation=crx_options.MobileEmulation(
            device_metrics=crx_options.DeviceMetrics(width=360, height=640, pixel_ratio=3.0),
            user_agent="Mozilla/5.0 (Linux; Android 13)",
        ),
        perf_logging_prefs=crx_options.PerfLoggingPreferences(
            enable_network=True,
            enable_page=False,
            trace_categories="devtools.timeline",
            buffer_usage_reporting_interval=1000,
        ),
        window_types=["webview"],
        android_package="com.android.chrome",
        w3c=False,
    )

    payload = options.to_dict()
    assert payload == {
        "binary": "/usr/bin/chromium",
        "excludeSwitches": ["enable-automation"],
        "localState": {"browser.enabled_labs_experiments": []},
        "prefs": {"download.default_directory": "/tmp"},
        "detach": False,
        "debuggerAddress": "127.0.0.1:9222",
        "minidumpPath": "/tmp/dumps",
        "windowTypes": ["webview"],
        "androidPackage": "com.android.chrome",
        "mobileEmulation": {
            "userAgent": "Mozilla/5.0 (Linux; Android 13)",
            "deviceMetrics": {"width": 360, "height": 640, "pixelRatio": 3.0},
        },
        "perfLoggingPrefs": {
            "enableNetwork": True,
            "enablePage": False,
            "traceCategories": "devtools.timeline",
            "bufferUsageReportingInterval": 1000,
        },
        "w3c": False,
    }
    json.dumps(payload)


def test_nested_blocks_sent_when_set() -> None:
    options = crx_options.ChromeOptions(
        mobile_emulation=crx_options.MobileEmulation(device_name="Pixel 7"),
        perf_logging_prefs=crx_options.PerfLoggingPreferences(),
    )
    payload = options.to_dict()
    assert payload["mobileEmulation"] == {"deviceName": "Pixel 7"}
    assert payload["perfLoggingPrefs"] == {}
    assert "detach" not in payload


def test_device_metrics_touch_only_when_set() -> None:
    metrics = crx_options.DeviceMetrics(width=0, height=0, pixel_ratio=0.0, touch=False)
    assert metrics.to_dict() == {"width": 0, "height": 0, "pixelRatio": 0.0, "touch": False}


def test_device_name_excludes_metrics() -> None:
    with pytest.raises(ValueError, match="device_name"):
        crx_options.MobileEmulation(device_name="Pixel 7", user_agent="custom")
