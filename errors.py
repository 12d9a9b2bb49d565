"""
Error types for the allocator and the request-handling driver.

Every error is an IPAMError. The mixins describe how a request handler
should classify the failure (bad request, not found, ...).
"""


class BadRequestError(Exception):
    """The caller sent something the allocator cannot act on"""


class NotFoundError(Exception):
    """The caller referred to something that does not exist"""


class NoServiceError(Exception):
    """The request was valid but cannot be served right now"""


class InternalError(Exception):
    """Something went wrong on our side"""


class IPAMError(Exception):
    pass


# ============ ALLOCATOR ============


class InvalidAddressFamily(IPAMError, BadRequestError):
    """Only 32-bit IPv4 addresses and subnets are supported"""


class InvalidAddress(IPAMError, BadRequestError, ValueError):
    """Text that does not parse as an address or CIDR"""


class InvalidMaskLength(IPAMError, BadRequestError):
    pass


class DuplicatePool(IPAMError, BadRequestError):
    pass


class PoolExhausted(IPAMError, NoServiceError):
    pass


class PoolNotAllocated(IPAMError, NotFoundError):
    pass


class AddressUnavailable(IPAMError, BadRequestError):
    pass


class AddressNotAllocated(IPAMError, NotFoundError):
    pass


class CorruptSnapshot(IPAMError, InternalError):
    pass


class SnapshotMissing(IPAMError, NotFoundError):
    """No snapshot has been written to the store yet"""


# ============ DRIVER ============


class UnsupportedIPv6(IPAMError, BadRequestError):
    def __init__(self):
        super().__init__("IPv6 allocation requests are not supported")


class UnsupportedPoolRequest(IPAMError, BadRequestError):
    def __init__(self):
        super().__init__("specific pool requests are not supported")


class AddressSpaceNotFound(IPAMError, NotFoundError):
    def __init__(self, address_space: str):
        super().__init__(f"address space not found: {address_space}")
        self.address_space = address_space


class NilAllocator(IPAMError, BadRequestError):
    def __init__(self):
        super().__init__("cannot make requests to the nil address space")


class ParseIDError(IPAMError, BadRequestError):
    def __init__(self, pool_id: str):
        super().__init__(f"unable to parse pool ID: {pool_id}")
        self.pool_id = pool_id


class ParseIPError(IPAMError, BadRequestError):
    def __init__(self, address: str):
        super().__init__(f"unable to parse ip address: {address}")
        self.address = address
