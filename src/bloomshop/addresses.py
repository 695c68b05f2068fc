"""Per-user shipping addresses with a single default."""

import logging
import re
from typing import Any, Sequence

from .errors import NotFoundError, ValidationError
from .models import AddressType, ShippingAddress, _utc_now
from .store import Database, Transaction
from .utils import check_length, require_fields

logger = logging.getLogger(__name__)

REQUIRED_ADDRESS_FIELDS = ("recipient_name", "address_line1", "city", "state", "postal_code")
EDITABLE_ADDRESS_FIELDS = (
    "recipient_name",
    "address_line1",
    "address_line2",
    "city",
    "state",
    "postal_code",
    "country",
    "phone",
    "address_type",
    "delivery_instructions",
)
FIELD_LIMITS = {
    "recipient_name": 200,
    "address_line1": 255,
    "address_line2": 255,
    "city": 100,
    "state": 100,
    "postal_code": 20,
    "country": 100,
    "phone": 20,
    "delivery_instructions": 500,
}
US_POSTAL_CODE = re.compile(r"^\d{5}(-\d{4})?$")


def _user_addresses(txn: Transaction, user_id: int) -> list[ShippingAddress]:
    return [
        ShippingAddress.from_dict(r)
        for r in txn.rows("addresses")
        if r["user_id"] == user_id
    ]


def load_user_address(txn: Transaction, user_id: int, address_id: int) -> ShippingAddress:
    """
    Load an address owned by user_id.

    Raises:
        NotFoundError: If it doesn't exist or belongs to another user.
    """
    row = txn.get("addresses", address_id)
    if row is None or row["user_id"] != user_id:
        raise NotFoundError("Address", address_id)
    return ShippingAddress.from_dict(row)


def _make_default(txn: Transaction, user_id: int, address_id: int) -> None:
    """Flip is_default so that exactly address_id is the user's default."""
    now = _utc_now()
    for address in _user_addresses(txn, user_id):
        should_be_default = address.id == address_id
        if address.is_default != should_be_default:
            address.is_default = should_be_default
            address.updated_at = now
            txn.update("addresses", address.id, address.to_dict())


def _apply_address_fields(address: ShippingAddress, data: dict[str, Any]) -> None:
    for name, limit in FIELD_LIMITS.items():
        if name in data:
            check_length(data[name], name, limit)
    for name in EDITABLE_ADDRESS_FIELDS:
        if name not in data:
            continue
        value = data[name]
        if name == "address_type":
            try:
                address.address_type = AddressType(value or "home")
            except ValueError:
                raise ValidationError(
                    "Invalid address type",
                    invalid_fields={"address_type": "must be one of: home, work, other"},
                )
        elif name in REQUIRED_ADDRESS_FIELDS:
            if not value:
                raise ValidationError("Missing required fields", missing_fields=[name])
            setattr(address, name, value)
        elif name == "country":
            address.country = value or "United States"
        else:
            setattr(address, name, value or None)


class AddressBook:
    """CRUD over shipping addresses, keeping one default per user."""

    def __init__(self, db: Database, delivery_postal_prefixes: Sequence[str] = ()):
        self.db = db
        self.delivery_postal_prefixes = tuple(delivery_postal_prefixes)

    def list_addresses(self, user_id: int) -> list[ShippingAddress]:
        """Default first, then newest first."""
        with self.db.snapshot() as txn:
            addresses = _user_addresses(txn, user_id)
        addresses.sort(key=lambda a: (a.is_default, a.created_at, a.id), reverse=True)
        return addresses

    def get_address(self, user_id: int, address_id: int) -> ShippingAddress:
        with self.db.snapshot() as txn:
            return load_user_address(txn, user_id, address_id)

    def get_default(self, user_id: int) -> ShippingAddress:
        """
        Raises:
            NotFoundError: If the user has no addresses.
        """
        with self.db.snapshot() as txn:
            for address in _user_addresses(txn, user_id):
                if address.is_default:
                    return address
        raise NotFoundError("Default address")

    def create_address(self, user_id: int, data: dict[str, Any]) -> ShippingAddress:
        """
        Create an address. The user's first address becomes the default.

        Raises:
            ValidationError: If required fields are missing or values invalid.
        """
        require_fields(data, REQUIRED_ADDRESS_FIELDS)
        address = ShippingAddress(
            id=0,
            user_id=user_id,
            recipient_name=data["recipient_name"],
            address_line1=data["address_line1"],
            city=data["city"],
            state=data["state"],
            postal_code=data["postal_code"],
        )
        _apply_address_fields(address, data)

        with self.db.transaction() as txn:
            is_first = not _user_addresses(txn, user_id)
            address.is_default = False
            address.id = txn.insert("addresses", address.to_dict())
            if is_first or data.get("is_default"):
                _make_default(txn, user_id, address.id)
                address.is_default = True

        logger.info("User %s added address %s", user_id, address.id)
        return address

    def update_address(self, user_id: int, address_id: int, data: dict[str, Any]) -> ShippingAddress:
        """
        Update an address owned by the user.

        Setting is_default=True switches the default in the same transaction.
        Clearing is_default on the current default is rejected: choose another
        default instead.
        """
        with self.db.transaction() as txn:
            address = load_user_address(txn, user_id, address_id)
            _apply_address_fields(address, data)
            if data.get("is_default") is False and address.is_default:
                raise ValidationError(
                    "A default address is required. Set another address as default instead."
                )
            address.updated_at = _utc_now()
            txn.update("addresses", address.id, address.to_dict())
            if data.get("is_default") and not address.is_default:
                _make_default(txn, user_id, address.id)
                address.is_default = True
        return address

    def delete_address(self, user_id: int, address_id: int) -> ShippingAddress:
        """
        Delete an address. Deleting the default promotes the newest remaining one.

        Raises:
            NotFoundError: If the address doesn't exist for this user.
            ValidationError: If it is the user's only address.
        """
        with self.db.transaction() as txn:
            address = load_user_address(txn, user_id, address_id)
            remaining = [a for a in _user_addresses(txn, user_id) if a.id != address_id]
            if not remaining:
                raise ValidationError(
                    "Cannot delete the only address. Please add another address first."
                )
            txn.delete("addresses", address.id)
            if address.is_default:
                newest = max(remaining, key=lambda a: (a.created_at, a.id))
                _make_default(txn, user_id, newest.id)

        logger.info("User %s deleted address %s", user_id, address_id)
        return address

    def set_default(self, user_id: int, address_id: int) -> ShippingAddress:
        """Atomically make address_id the user's only default address."""
        with self.db.transaction() as txn:
            address = load_user_address(txn, user_id, address_id)
            _make_default(txn, user_id, address.id)
            address.is_default = True
        return address

    def validate_delivery_area(self, postal_code: str | None) -> bool:
        """
        Raises:
            ValidationError: If no postal code is given.
        """
        if not postal_code or not postal_code.strip():
            raise ValidationError("Postal code is required", missing_fields=["postal_code"])
        code = postal_code.strip()
        if not US_POSTAL_CODE.match(code):
            return False
        if self.delivery_postal_prefixes:
            return code.startswith(self.delivery_postal_prefixes)
        return True
