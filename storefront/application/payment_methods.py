import logging
import uuid
from datetime import date, datetime, timezone
from typing import Optional
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from storefront.config import settings
from storefront.domain.cards import clean_card_holder, validate_card
from storefront.domain.exceptions import LimitExceededError, PaymentMethodNotFoundError
from storefront.domain.models import PaymentMethod
from storefront.application.interfaces import UnitOfWork
from storefront.application.retry import retry_on_conflict

logger = logging.getLogger(__name__)


class PaymentDetailsDTO(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    card_number: Optional[str] = None
    card_holder: Optional[str] = None
    expiry_date: Optional[str] = None
    cvv: Optional[str] = None
    is_default: bool = False


class PaymentMethodUpdateDTO(BaseModel):
    """Номер карты и срок действия не меняются, только владелец и признак по умолчанию"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    card_holder: Optional[str] = None
    is_default: Optional[bool] = None


class PaymentLimits(BaseModel):
    current_count: int
    limit: int
    can_add_more: bool
    remaining_slots: int


class PaymentMethodVault:
    """Хранилище карт: только последние 4 цифры, не более limit карт на пользователя."""

    def __init__(self, limit: int | None = None, today: Optional[date] = None):
        self._limit = limit or settings.PAYMENT_METHODS_LIMIT
        self._today = today

    @property
    def limit(self) -> int:
        return self._limit

    def limits(self, count: int) -> PaymentLimits:
        return PaymentLimits(
            current_count=count,
            limit=self._limit,
            can_add_more=count < self._limit,
            remaining_slots=max(self._limit - count, 0)
        )

    def _limit_error(self) -> LimitExceededError:
        return LimitExceededError(
            f"Payment method limit reached. You can only have up to {self._limit} saved payment methods."
        )

    async def save_card(self, uow: UnitOfWork, owner_id: str, details: PaymentDetailsDTO) -> PaymentMethod:
        """Работает внутри транзакции вызывающего, commit делает он."""
        # Сохранения карт одного пользователя идут по очереди
        await uow.users.lock(owner_id)
        count = await uow.payment_methods.count_by_user(owner_id)
        if count >= self._limit:
            raise self._limit_error()

        card = validate_card(
            details.card_number, details.card_holder, details.expiry_date, details.cvv, today=self._today
        )

        now = datetime.now(timezone.utc)
        payment_method = PaymentMethod(
            id=str(uuid.uuid4()),
            user_id=owner_id,
            last_four=card.last_four,
            card_holder=card.card_holder,
            expiry_month=card.expiry_month,
            expiry_year=card.expiry_year,
            card_type=card.card_type,
            is_default=details.is_default,
            created_at=now,
            updated_at=now
        )
        await uow.payment_methods.create(payment_method)

        # Повторный подсчет до commit
        if await uow.payment_methods.count_by_user(owner_id) > self._limit:
            logger.warning(f"Лимит карт пользователя {owner_id} превышен параллельной записью, откат")
            raise self._limit_error()

        if payment_method.is_default:
            await uow.payment_methods.set_default(payment_method.id, owner_id)

        logger.info(f"Сохранена карта {card.card_type.value} *{card.last_four} для пользователя {owner_id}")
        return payment_method


class SavePaymentMethodUseCase:
    def __init__(self, unit_of_work, vault: PaymentMethodVault):
        self._uow = unit_of_work
        self._vault = vault

    async def __call__(self, owner_id: str, details: PaymentDetailsDTO) -> tuple[PaymentMethod, int]:
        async with self._uow() as uow:
            payment_method = await self._vault.save_card(uow, owner_id, details)
            await uow.commit()
            count = await uow.payment_methods.count_by_user(owner_id)
        return payment_method, count


class ListPaymentMethodsUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, owner_id: str) -> list[PaymentMethod]:
        async with self._uow() as uow:
            return await uow.payment_methods.list_by_user(owner_id)


class GetPaymentMethodUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, owner_id: str, payment_method_id: str) -> PaymentMethod:
        async with self._uow() as uow:
            payment_method = await uow.payment_methods.get_owned(payment_method_id, owner_id)
        if not payment_method:
            raise PaymentMethodNotFoundError("Payment method not found")
        return payment_method


class GetDefaultPaymentMethodUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, owner_id: str) -> PaymentMethod:
        async with self._uow() as uow:
            payment_method = await uow.payment_methods.get_default(owner_id)
        if not payment_method:
            raise PaymentMethodNotFoundError("No default payment method found")
        return payment_method


class GetPaymentLimitsUseCase:
    def __init__(self, unit_of_work, vault: PaymentMethodVault):
        self._uow = unit_of_work
        self._vault = vault

    async def __call__(self, owner_id: str) -> PaymentLimits:
        async with self._uow() as uow:
            count = await uow.payment_methods.count_by_user(owner_id)
        return self._vault.limits(count)


class UpdatePaymentMethodUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, owner_id: str, payment_method_id: str, changes: PaymentMethodUpdateDTO) -> PaymentMethod:
        update = {}
        if changes.card_holder is not None:
            update["card_holder"] = clean_card_holder(changes.card_holder)

        async def attempt() -> PaymentMethod:
            async with self._uow() as uow:
                payment_method = await uow.payment_methods.get_owned(payment_method_id, owner_id)
                if not payment_method:
                    raise PaymentMethodNotFoundError("Payment method not found")

                fields = dict(update, updated_at=datetime.now(timezone.utc))
                if changes.is_default is not None:
                    fields["is_default"] = changes.is_default
                payment_method = payment_method.model_copy(update=fields)

                await uow.payment_methods.update(payment_method)
                if changes.is_default:
                    await uow.payment_methods.set_default(payment_method_id, owner_id)
                await uow.commit()
                return payment_method

        payment_method = await retry_on_conflict(attempt)
        logger.info(f"Обновлена карта {payment_method_id} пользователя {owner_id}")
        return payment_method


class SetDefaultPaymentMethodUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, owner_id: str, payment_method_id: str) -> PaymentMethod:
        async def attempt() -> PaymentMethod:
            async with self._uow() as uow:
                payment_method = await uow.payment_methods.get_owned(payment_method_id, owner_id)
                if not payment_method:
                    raise PaymentMethodNotFoundError("Payment method not found")
                await uow.payment_methods.set_default(payment_method_id, owner_id)
                await uow.commit()
                return payment_method.model_copy(update={"is_default": True})

        return await retry_on_conflict(attempt)


class DeletePaymentMethodUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, owner_id: str, payment_method_id: str) -> None:
        async with self._uow() as uow:
            if not await uow.payment_methods.delete(payment_method_id, owner_id):
                raise PaymentMethodNotFoundError("Payment method not found")
            await uow.commit()
        logger.info(f"Удалена карта {payment_method_id} пользователя {owner_id}")
