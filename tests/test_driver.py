"""Tests for the IPAM request driver."""
import logging

import pytest

from driver import Driver, id_to_pool, pool_to_id
from errors import (
    AddressNotAllocated,
    AddressSpaceNotFound,
    AddressUnavailable,
    InvalidMaskLength,
    NilAllocator,
    ParseIDError,
    ParseIPError,
    PoolExhausted,
    PoolNotAllocated,
    UnsupportedIPv6,
    UnsupportedPoolRequest,
)
from pools import as_pool


@pytest.fixture
def driver(seeded):
    return Driver(local=seeded)


def request_pool(driver, mask_length=None, **extra):
    req = {"AddressSpace": "local", "Options": {}}
    if mask_length is not None:
        req["Options"]["mask_length"] = str(mask_length)
    req.update(extra)
    return driver.request_pool(req)


class TestPoolIDs:

    def test_round_trip(self):
        pool = as_pool("172.16.0.0/24")
        assert pool_to_id("local", pool) == "local:172.16.0.0/24"
        assert id_to_pool("local:172.16.0.0/24") == ("local", pool)

    @pytest.mark.parametrize("pool_id", ["", "172.16.0.0/24", "local:", "local:fd00::/64", "local:10.0.0.0/40"])
    def test_unparseable(self, pool_id):
        with pytest.raises(ParseIDError):
            id_to_pool(pool_id)


class TestAddressSpaces:

    def test_defaults(self, driver):
        assert driver.get_default_address_spaces() == {
            "LocalDefaultAddressSpace": "local",
            "GlobalDefaultAddressSpace": "null",
        }

    def test_capabilities(self, driver):
        assert driver.get_capabilities() == {"RequiresMACAddress": False}

    def test_unknown_space(self, driver):
        with pytest.raises(AddressSpaceNotFound):
            driver.request_pool({"AddressSpace": "global"})

    def test_nil_space(self, driver):
        with pytest.raises(NilAllocator):
            driver.request_pool({"AddressSpace": "null"})


class TestRequestPool:

    def test_default_mask_length(self, driver):
        res = request_pool(driver)
        assert res == {
            "PoolID": "local:172.16.0.0/28",
            "Pool": "172.16.0.0/28",
            "Data": {},
        }

    def test_configured_default(self, seeded):
        res = Driver(local=seeded, default_mask_length=20).request_pool(
            {"AddressSpace": "local"}
        )
        assert res["Pool"] == "172.16.0.0/20"

    def test_mask_length_option(self, driver):
        assert request_pool(driver, 24)["Pool"] == "172.16.0.0/24"

    def test_bad_mask_length_option(self, driver):
        with pytest.raises(InvalidMaskLength):
            request_pool(driver, "twenty")
        with pytest.raises(InvalidMaskLength):
            request_pool(driver, 32)

    def test_v6(self, driver):
        with pytest.raises(UnsupportedIPv6):
            request_pool(driver, V6=True)

    @pytest.mark.parametrize("field", ["Pool", "SubPool"])
    def test_specific_pool(self, driver, field):
        with pytest.raises(UnsupportedPoolRequest):
            request_pool(driver, **{field: "172.16.5.0/24"})

    def test_exhausted(self, driver):
        request_pool(driver, 16)
        with pytest.raises(PoolExhausted):
            request_pool(driver, 24)

    def test_release(self, driver, seeded):
        res = request_pool(driver, 24)
        assert driver.release_pool({"PoolID": res["PoolID"]}) is None
        assert seeded.dump().free == ["172.16.0.0/16"]

    def test_release_unknown(self, driver):
        with pytest.raises(PoolNotAllocated):
            driver.release_pool({"PoolID": "local:172.16.0.0/24"})

    def test_release_bad_id(self, driver):
        with pytest.raises(ParseIDError):
            driver.release_pool({"PoolID": "garbage"})


class TestAddresses:

    @pytest.fixture
    def pool_id(self, driver):
        return request_pool(driver, 24)["PoolID"]

    def test_request(self, driver, pool_id):
        res = driver.request_address({"PoolID": pool_id})
        assert res == {"Address": "172.16.0.1/24", "Data": {}}

    def test_request_specific(self, driver, pool_id):
        res = driver.request_address({"PoolID": pool_id, "Address": "172.16.0.5"})
        assert res["Address"] == "172.16.0.5/24"
        with pytest.raises(AddressUnavailable):
            driver.request_address({"PoolID": pool_id, "Address": "172.16.0.5"})

    def test_request_bad_address(self, driver, pool_id):
        with pytest.raises(ParseIPError):
            driver.request_address({"PoolID": pool_id, "Address": "172.16.0.500"})

    def test_release(self, driver, pool_id):
        driver.request_address({"PoolID": pool_id, "Address": "172.16.0.5"})
        driver.release_address({"PoolID": pool_id, "Address": "172.16.0.5"})
        with pytest.raises(AddressNotAllocated):
            driver.release_address({"PoolID": pool_id, "Address": "172.16.0.5"})

    def test_release_requires_address(self, driver, pool_id):
        with pytest.raises(ParseIPError):
            driver.release_address({"PoolID": pool_id})


class TestRequestLogging:

    def test_success_is_logged(self, driver, caplog):
        with caplog.at_level(logging.INFO, logger="driver"):
            request_pool(driver, 24)
        assert "request_pool(" in caplog.text
        assert "local:172.16.0.0/24" in caplog.text

    def test_client_errors_warn(self, driver, caplog):
        with caplog.at_level(logging.INFO, logger="driver"):
            with pytest.raises(PoolNotAllocated):
                driver.release_pool({"PoolID": "local:172.16.0.0/24"})

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert "[NotFoundError]" in record.getMessage()

    def test_unclassified_errors_are_errors(self, caplog):
        class Broken:
            address_space = "local"

            def request_pool(self, prefix_length):
                raise RuntimeError("boom")

        with caplog.at_level(logging.INFO, logger="driver"):
            with pytest.raises(RuntimeError):
                Driver(local=Broken()).request_pool({"AddressSpace": "local"})

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert "[UNKNOWN]" in record.getMessage()
