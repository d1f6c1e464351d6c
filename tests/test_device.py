"""Unit Tests for device identity

Tests: platform string to device name mapping, stable id generation,
device record persistence
"""
import pytest


class TestDeviceName:
    """Tests for device_name()."""

    @pytest.mark.parametrize("platform_string,expected", [
        ("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile/15E148", "Mobile Device"),
        ("Mozilla/5.0 (Linux; Android 14; Tablet)", "Tablet"),
        ("Windows-10-10.0.19045-SP0", "Windows PC"),
        ("Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0)", "Mac"),
        ("macOS-14.2-arm64-arm-64bit", "Mac"),
        ("Darwin-23.2.0-arm64", "Mac"),
        ("Linux-6.1.0-18-amd64-x86_64-with-glibc2.36", "Linux PC"),
    ])
    def test_known_platforms(self, platform_string, expected):
        """Recognized platform strings map to their label."""
        from meetingsync.device import device_name

        assert device_name(platform_string) == expected

    def test_mobile_checked_before_mac(self):
        """An iPhone user agent mentions Mac OS X but is reported as mobile."""
        from meetingsync.device import device_name

        assert device_name("iPhone; CPU iPhone OS like Mac OS X Mobile") == "Mobile Device"

    @pytest.mark.parametrize("value", [None, "", "FreeBSD-14.0", 42, object()])
    def test_unknown_never_raises(self, value):
        """Unrecognized or non-string input yields Unknown Device."""
        from meetingsync.device import device_name

        assert device_name(value) == "Unknown Device"


class TestDeviceIdentity:
    """Tests for DeviceIdentity."""

    @pytest.mark.asyncio
    async def test_id_generated_once_and_persisted(self, store):
        """ensure_id creates one id and returns it on every call."""
        from meetingsync.device import DeviceIdentity
        from meetingsync.local_store import DEVICE_ID_KEY

        identity = DeviceIdentity(store, platform_string="Linux-6.1")
        first = await identity.ensure_id()
        second = await identity.ensure_id()

        assert first == second
        assert await store.get(DEVICE_ID_KEY) == first

    @pytest.mark.asyncio
    async def test_id_survives_new_instance(self, store):
        """A second identity over the same store reuses the stored id."""
        from meetingsync.device import DeviceIdentity

        first = await DeviceIdentity(store, platform_string="Linux").ensure_id()
        second = await DeviceIdentity(store, platform_string="Linux").ensure_id()

        assert first == second

    @pytest.mark.asyncio
    async def test_ensure_record_writes_device_info(self, store):
        """ensure_record persists id, name and lastSeen."""
        from meetingsync.device import DeviceIdentity
        from meetingsync.local_store import DEVICE_INFO_KEY

        identity = DeviceIdentity(store, platform_string="Windows-11")
        record = await identity.ensure_record()

        stored = await store.get(DEVICE_INFO_KEY)
        assert stored["id"] == record.id
        assert stored["name"] == "Windows PC"
        assert stored["lastSeen"].endswith("Z")

    @pytest.mark.asyncio
    async def test_forget_generates_new_id(self, store):
        """After forget(), the record is gone and a new id is generated."""
        from meetingsync.device import DeviceIdentity
        from meetingsync.local_store import DEVICE_INFO_KEY

        identity = DeviceIdentity(store, platform_string="Linux")
        old_id = await identity.ensure_id()
        await identity.forget()

        assert await store.get(DEVICE_INFO_KEY) is None
        assert await identity.ensure_id() != old_id

    @pytest.mark.asyncio
    async def test_default_platform_used(self, store):
        """Without an override the host platform names the device."""
        from unittest.mock import patch
        from meetingsync.device import DeviceIdentity, default_platform_string

        with patch("meetingsync.device.platform.platform", return_value="Windows-10-10.0.19045-SP0"):
            assert default_platform_string() == "Windows-10-10.0.19045-SP0"
            identity = DeviceIdentity(store)

        assert identity.name == "Windows PC"
