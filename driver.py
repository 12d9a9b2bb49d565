"""
IPAM driver: container-network style requests on top of the allocators

Requests and responses are plain dicts using the IPAM plugin field names
(AddressSpace, PoolID, Address, ...). Transport is left to the caller.
"""

import ipaddress
import logging
import re
from functools import wraps
from typing import Any, Dict, Optional, Tuple

from allocator import NIL_ADDRESS_SPACE, Allocator, address_space_of
from config import DEFAULT_MASK_LENGTH
from errors import (
    AddressSpaceNotFound,
    BadRequestError,
    IPAMError,
    InternalError,
    InvalidMaskLength,
    NilAllocator,
    NoServiceError,
    NotFoundError,
    ParseIDError,
    ParseIPError,
    UnsupportedIPv6,
    UnsupportedPoolRequest,
)
from pools import Pool, as_pool

logger = logging.getLogger(__name__)

MASK_LENGTH_OPTION = "mask_length"

POOL_ID_RE = re.compile(r"([a-zA-Z0-9_]+):([a-zA-Z0-9./]+)")

# Checked in order; the first match decides label and level
_ERROR_CLASSES = (
    (BadRequestError, "BadRequestError", logging.WARNING),
    (NotFoundError, "NotFoundError", logging.WARNING),
    (NoServiceError, "NoServiceError", logging.WARNING),
    (InternalError, "InternalError", logging.ERROR),
)


def _log_request(name: str, request: Any, response: Any, error: Optional[Exception]):
    """Log request inputs and results"""
    if error is None:
        if response is None:
            logger.info("%s(%s)", name, request)
        else:
            logger.info("%s(%s): %s", name, request, response)
        return

    for cls, label, level in _ERROR_CLASSES:
        if isinstance(error, cls):
            logger.log(level, "[%s] %s(%s): %s", label, name, request, error)
            return
    # Unclassified errors should be treated as bad
    logger.error("[UNKNOWN] %s(%s): %s", name, request, error)


def _logged(fn):
    @wraps(fn)
    def wrapper(self, *args):
        request = args[0] if args else None
        try:
            response = fn(self, *args)
        except Exception as e:
            _log_request(fn.__name__, request, None, e)
            raise
        _log_request(fn.__name__, request, response, None)
        return response

    return wrapper


def pool_to_id(address_space: str, pool: Pool) -> str:
    return f"{address_space}:{pool}"


def id_to_pool(pool_id: str) -> Tuple[str, Pool]:
    m = POOL_ID_RE.fullmatch(pool_id or "")
    if not m:
        raise ParseIDError(pool_id)

    try:
        pool = as_pool(m.group(2))
    except IPAMError as e:
        raise ParseIDError(pool_id) from e
    return m.group(1), pool


def _parse_ip(address: Optional[str]) -> ipaddress.IPv4Address:
    try:
        return ipaddress.ip_address(address)
    except ValueError as e:
        raise ParseIPError(address) from e


class Driver:
    def __init__(
        self,
        local: Optional[Allocator] = None,
        global_: Optional[Allocator] = None,
        default_mask_length: int = DEFAULT_MASK_LENGTH,
    ):
        self.local = local
        self.global_ = global_
        self.default_mask_length = default_mask_length

    def _allocator(self, address_space: str) -> Allocator:
        if address_space == NIL_ADDRESS_SPACE:
            raise NilAllocator()
        if address_space == address_space_of(self.local):
            return self.local
        if address_space == address_space_of(self.global_):
            return self.global_
        raise AddressSpaceNotFound(address_space)

    def _mask_length(self, options: Optional[Dict[str, Any]]) -> int:
        if not options or MASK_LENGTH_OPTION not in options:
            return self.default_mask_length
        value = options[MASK_LENGTH_OPTION]
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise InvalidMaskLength(f"Invalid mask length option: {value!r}") from e

    @_logged
    def get_default_address_spaces(self) -> Dict[str, str]:
        return {
            "LocalDefaultAddressSpace": address_space_of(self.local),
            "GlobalDefaultAddressSpace": address_space_of(self.global_),
        }

    @_logged
    def request_pool(self, req: Dict[str, Any]) -> Dict[str, Any]:
        if req.get("V6"):
            raise UnsupportedIPv6()
        if req.get("Pool") or req.get("SubPool"):
            raise UnsupportedPoolRequest()

        address_space = req.get("AddressSpace", "")
        a = self._allocator(address_space)

        pool = a.request_pool(self._mask_length(req.get("Options")))
        return {
            "PoolID": pool_to_id(address_space, pool),
            "Pool": str(pool),
            "Data": {},
        }

    @_logged
    def release_pool(self, req: Dict[str, Any]) -> None:
        address_space, pool = id_to_pool(req.get("PoolID", ""))
        self._allocator(address_space).release_pool(pool)

    @_logged
    def request_address(self, req: Dict[str, Any]) -> Dict[str, Any]:
        address_space, pool = id_to_pool(req.get("PoolID", ""))
        a = self._allocator(address_space)

        ip = None
        if req.get("Address"):
            ip = _parse_ip(req["Address"])

        ip = a.request_address(pool, ip)
        return {"Address": pool.with_address(ip.packed), "Data": {}}

    @_logged
    def release_address(self, req: Dict[str, Any]) -> None:
        address_space, pool = id_to_pool(req.get("PoolID", ""))
        a = self._allocator(address_space)

        a.release_address(_parse_ip(req.get("Address")))

    @_logged
    def get_capabilities(self) -> Dict[str, bool]:
        return {"RequiresMACAddress": False}
