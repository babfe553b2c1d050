import logging
import uuid
from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from storefront.domain.exceptions import AddressNotFoundError, InvalidInputError
from storefront.domain.models import Address, AddressType
from storefront.application.interfaces import UnitOfWork
from storefront.application.retry import retry_on_conflict

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    ("full_name", "Full name"),
    ("street", "Street address"),
    ("city", "City"),
    ("state", "State"),
    ("zip_code", "ZIP code"),
)


class AddressDTO(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    full_name: Optional[str] = None
    phone: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    address_type: AddressType = AddressType.HOME
    is_default: bool = False

    """Частичное обновление: поле None не меняется"""
class AddressUpdateDTO(BaseModel):
    """Частичное обновление: None означает \"не менять\""""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    full_name: Optional[str] = None
    phone: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    address_type: Optional[AddressType] = None
    is_default: Optional[bool] = None


class AddressBook:
    """Адресная книга: дедупликация по (улица, город, штат, индекс) и один адрес по умолчанию."""

    async def save_address(self, uow: UnitOfWork, owner_id: str, fields: AddressDTO) -> Address:
        for name, label in REQUIRED_FIELDS:
            if not (getattr(fields, name) or "").strip():
                raise InvalidInputError(f"{label} is required")

        street = fields.street.strip()
        city = fields.city.strip()
        state = fields.state.strip()
        zip_code = fields.zip_code.strip()

        existing = await uow.addresses.find_same_location(owner_id, street, city, state, zip_code)
        if existing:
            logger.info(f"Адрес {existing.id} уже есть у пользователя {owner_id}, дубликат не создаем")
            if fields.is_default and not existing.is_default:
                await uow.addresses.set_default(existing.id, owner_id)
                existing = existing.model_copy(update={"is_default": True})
            return existing

        now = datetime.now(timezone.utc)
        address = Address(
            id=str(uuid.uuid4()),
            user_id=owner_id,
            full_name=fields.full_name.strip(),
            phone=(fields.phone or "").strip(),
            street=street,
            city=city,
            state=state,
            zip_code=zip_code,
            country=(fields.country or "").strip() or "United States",
            is_default=fields.is_default,
            address_type=fields.address_type,
            created_at=now,
            updated_at=now
        )
        await uow.addresses.create(address)
        if address.is_default:
            await uow.addresses.set_default(address.id, owner_id)

        logger.info(f"Сохранен адрес {address.id} для пользователя {owner_id}")
        return address


class SaveAddressUseCase:
    def __init__(self, unit_of_work, address_book: AddressBook):
        self._uow = unit_of_work
        self._address_book = address_book

    async def __call__(self, owner_id: str, fields: AddressDTO) -> Address:
        async with self._uow() as uow:
            address = await self._address_book.save_address(uow, owner_id, fields)
            await uow.commit()
        return address


class ListAddressesUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, owner_id: str) -> list[Address]:
        async with self._uow() as uow:
            return await uow.addresses.list_by_user(owner_id)


class SetDefaultAddressUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, owner_id: str, address_id: str) -> Address:
        async def attempt() -> Address:
            async with self._uow() as uow:
                address = await uow.addresses.get_owned(address_id, owner_id)
                if not address:
                    raise AddressNotFoundError("Address not found")
                await uow.addresses.set_default(address_id, owner_id)
                await uow.commit()
                return address.model_copy(update={"is_default": True})

        return await retry_on_conflict(attempt)


class GetAddressUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, owner_id: str, address_id: str) -> Address:
        async with self._uow() as uow:
            address = await uow.addresses.get_owned(address_id, owner_id)
        if not address:
            raise AddressNotFoundError("Address not found")
        return address


class UpdateAddressUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, owner_id: str, address_id: str, changes: AddressUpdateDTO) -> Address:
        update = {}
        for name, label in REQUIRED_FIELDS:
            value = getattr(changes, name)
            if value is None:
                continue
            if not value.strip():
                raise InvalidInputError(f"{label} is required")
            update[name] = value.strip()
        if changes.phone is not None:
            update["phone"] = changes.phone.strip()
        if changes.country is not None:
            update["country"] = changes.country.strip() or "United States"
        if changes.address_type is not None:
            update["address_type"] = changes.address_type
        if changes.is_default is not None:
            update["is_default"] = changes.is_default

        async def attempt() -> Address:
            async with self._uow() as uow:
                address = await uow.addresses.get_owned(address_id, owner_id)
                if not address:
                    raise AddressNotFoundError("Address not found")
                address = address.model_copy(update=dict(update, updated_at=datetime.now(timezone.utc)))

                # Правка не может превратить адрес в дубликат другого сохраненного
                same = await uow.addresses.find_same_location(
                    owner_id, address.street, address.city, address.state, address.zip_code
                )
                if same and same.id != address.id:
                    raise InvalidInputError("This address is already saved")

                await uow.addresses.update(address)
                if changes.is_default:
                    await uow.addresses.set_default(address_id, owner_id)
                await uow.commit()
                return address

        address = await retry_on_conflict(attempt)
        logger.info(f"Обновлен адрес {address_id} пользователя {owner_id}")
        return address


class DeleteAddressUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, owner_id: str, address_id: str) -> None:
        async with self._uow() as uow:
            if not await uow.addresses.delete(address_id, owner_id):
                raise AddressNotFoundError("Address not found")
            await uow.commit()
        logger.info(f"Удален адрес {address_id} пользователя {owner_id}")
