"""Tests for saved cards and the address book."""

import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy import insert, select

from storefront.application.addresses import (
    AddressBook, AddressDTO, AddressUpdateDTO, DeleteAddressUseCase, GetAddressUseCase, ListAddressesUseCase,
    SaveAddressUseCase, SetDefaultAddressUseCase, UpdateAddressUseCase
)
from storefront.application.payment_methods import (
    DeletePaymentMethodUseCase, GetDefaultPaymentMethodUseCase, GetPaymentLimitsUseCase, GetPaymentMethodUseCase,
    ListPaymentMethodsUseCase, PaymentDetailsDTO, PaymentMethodUpdateDTO, PaymentMethodVault,
    SavePaymentMethodUseCase, SetDefaultPaymentMethodUseCase, UpdatePaymentMethodUseCase
)
from storefront.domain.exceptions import (
    AddressNotFoundError, InvalidInputError, LimitExceededError, PaymentMethodNotFoundError
)
from storefront.domain.models import AddressType, CardType
from storefront.infrastructure.db_schema import addresses_tbl, payment_methods_tbl
from storefront.infrastructure.repositories import SQLAlchemyPaymentMethodRepository, SQLAlchemyUserRepository


@pytest.fixture
def card(card_expiry):
    def build(number="4111111111111111", **overrides):
        fields = {"card_number": number, "card_holder": "Alice Smith", "expiry_date": card_expiry, "cvv": "123"}
        fields.update(overrides)
        return PaymentDetailsDTO(**fields)

    return build


@pytest.fixture
def save_card(store, customer):
    def run(details, owner_id=None):
        use_case = SavePaymentMethodUseCase(store.uow(), PaymentMethodVault())
        return store.run(use_case(owner_id or customer, details))

    return run


def seed_default_card(store, owner_id) -> str:
    payment_method_id = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    store.execute(
        insert(payment_methods_tbl).values(
            id=payment_method_id, user_id=owner_id, last_four="1111", card_holder="Alice Smith", expiry_month="12",
            expiry_year="2099", card_type="visa", is_default=True, created_at=now, updated_at=now
        )
    )
    return payment_method_id


def seed_default_address(store, owner_id, street) -> str:
    address_id = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    store.execute(
        insert(addresses_tbl).values(
            id=address_id, user_id=owner_id, full_name="Alice Smith", phone="", street=street, city="Springfield",
            state="IL", zip_code="62701", country="United States", is_default=True, address_type="home",
            created_at=now, updated_at=now
        )
    )
    return address_id


def home(**overrides) -> AddressDTO:
    fields = {
        "full_name": "Alice Smith",
        "phone": "555-0100",
        "street": "12 Main St",
        "city": "Springfield",
        "state": "IL",
        "zip_code": "62701",
    }
    fields.update(overrides)
    return AddressDTO(**fields)


class TestPaymentMethodVault:
    def test_stores_only_last_four(self, store, save_card, card):
        payment_method, count = save_card(card("5105 1051 0510 5100"))

        assert count == 1
        assert payment_method.last_four == "5100"
        assert payment_method.card_type == CardType.MASTERCARD
        assert payment_method.masked_card_number == "**** **** **** 5100"

        columns = set(payment_methods_tbl.c.keys())
        assert "card_number" not in columns and "cvv" not in columns

    def test_limit_of_five(self, store, save_card, card):
        for _ in range(5):
            save_card(card())

        with pytest.raises(LimitExceededError, match="up to 5 saved payment methods"):
            save_card(card())
        assert store.count(payment_methods_tbl) == 5

    def test_limit_checked_before_card_validation(self, store, save_card, card):
        for _ in range(5):
            save_card(card())

        with pytest.raises(LimitExceededError):
            save_card(card("not-a-card"))

    def test_limit_is_per_user(self, store, save_card, card):
        for _ in range(5):
            save_card(card())

        _, count = save_card(card(), owner_id=store.add_user("Bob"))
        assert count == 1

    def test_limit_holds_when_count_was_stale(self, store, save_card, card, monkeypatch):
        for _ in range(5):
            save_card(card())
        original = SQLAlchemyPaymentMethodRepository.count_by_user
        calls = []

        async def stale_first_count(repo, user_id):
            calls.append(user_id)
            if len(calls) == 1:
                return 4
            return await original(repo, user_id)

        monkeypatch.setattr(SQLAlchemyPaymentMethodRepository, "count_by_user", stale_first_count)

        with pytest.raises(LimitExceededError, match="up to 5 saved payment methods"):
            save_card(card())
        assert store.count(payment_methods_tbl) == 5

    def test_owner_row_is_locked_before_counting(self, store, customer, save_card, card, monkeypatch):
        events = []
        lock = SQLAlchemyUserRepository.lock
        count = SQLAlchemyPaymentMethodRepository.count_by_user

        async def recording_lock(repo, user_id):
            events.append(("lock", user_id))
            await lock(repo, user_id)

        async def recording_count(repo, user_id):
            events.append(("count", user_id))
            return await count(repo, user_id)

        monkeypatch.setattr(SQLAlchemyUserRepository, "lock", recording_lock)
        monkeypatch.setattr(SQLAlchemyPaymentMethodRepository, "count_by_user", recording_count)
        save_card(card())

        assert events[:2] == [("lock", customer), ("count", customer)]

    def test_invalid_card_is_not_stored(self, store, save_card, card):
        with pytest.raises(InvalidInputError, match="4-digit CVV"):
            save_card(card("378282246310005", cvv="123"))
        assert store.count(payment_methods_tbl) == 0

    def test_single_default(self, store, customer, save_card, card):
        first, _ = save_card(card(is_default=True))
        second, _ = save_card(card(is_default=True))

        methods = store.run(ListPaymentMethodsUseCase(store.uow())(customer))

        assert [m.id for m in methods if m.is_default] == [second.id]
        assert methods[0].id == second.id
        assert first.id in {m.id for m in methods}

    def test_set_default(self, store, customer, save_card, card):
        save_card(card(is_default=True))
        second, _ = save_card(card())

        updated = store.run(SetDefaultPaymentMethodUseCase(store.uow())(customer, second.id))

        assert updated.is_default is True
        defaults = store.scalars(
            select(payment_methods_tbl.c.id).where(payment_methods_tbl.c.is_default.is_(True))
        )
        assert defaults == [second.id]

    def test_set_default_repairs_several_defaults(self, store, customer):
        seeded = [seed_default_card(store, customer) for _ in range(3)]
        other_owner = store.add_user("Bob")
        foreign = seed_default_card(store, other_owner)

        store.run(SetDefaultPaymentMethodUseCase(store.uow())(customer, seeded[1]))

        defaults = store.scalars(
            select(payment_methods_tbl.c.id).where(
                payment_methods_tbl.c.user_id == customer, payment_methods_tbl.c.is_default.is_(True)
            )
        )
        assert defaults == [seeded[1]]
        assert store.scalars(
            select(payment_methods_tbl.c.is_default).where(payment_methods_tbl.c.id == foreign)
        ) == [True]

    def test_set_default_of_foreign_card(self, store, save_card, card):
        foreign, _ = save_card(card(), owner_id=store.add_user("Bob"))

        with pytest.raises(PaymentMethodNotFoundError):
            store.run(SetDefaultPaymentMethodUseCase(store.uow())(store.add_user("Eve"), foreign.id))

    def test_delete(self, store, customer, save_card, card):
        payment_method, _ = save_card(card())
        delete = DeletePaymentMethodUseCase(store.uow())

        store.run(delete(customer, payment_method.id))

        assert store.count(payment_methods_tbl) == 0
        with pytest.raises(PaymentMethodNotFoundError):
            store.run(delete(customer, payment_method.id))


class TestAddressBook:
    def test_saves_with_defaults(self, store, customer):
        address = store.run(SaveAddressUseCase(store.uow(), AddressBook())(customer, home()))

        assert address.country == "United States"
        assert address.address_type == AddressType.HOME
        assert store.count(addresses_tbl) == 1

    @pytest.mark.parametrize(
        "field,message",
        [("full_name", "Full name is required"), ("street", "Street address is required"),
         ("zip_code", "ZIP code is required")],
    )
    def test_required_fields(self, store, customer, field, message):
        with pytest.raises(InvalidInputError, match=message):
            store.run(SaveAddressUseCase(store.uow(), AddressBook())(customer, home(**{field: " "})))

    def test_same_location_is_not_duplicated(self, store, customer):
        save = SaveAddressUseCase(store.uow(), AddressBook())

        first = store.run(save(customer, home()))
        second = store.run(save(customer, home(full_name="A. Smith", street=" 12 Main St ")))

        assert first.id == second.id
        assert store.count(addresses_tbl) == 1

    def test_duplicate_can_become_default(self, store, customer):
        save = SaveAddressUseCase(store.uow(), AddressBook())
        first = store.run(save(customer, home()))
        store.run(save(customer, home(street="1 Elm St", is_default=True)))

        promoted = store.run(save(customer, home(is_default=True)))

        assert promoted.id == first.id and promoted.is_default
        addresses = store.run(ListAddressesUseCase(store.uow())(customer))
        assert [a.id for a in addresses if a.is_default] == [first.id]

    def test_set_default(self, store, customer):
        save = SaveAddressUseCase(store.uow(), AddressBook())
        first = store.run(save(customer, home(is_default=True)))
        second = store.run(save(customer, home(street="1 Elm St")))

        store.run(SetDefaultAddressUseCase(store.uow())(customer, second.id))

        addresses = store.run(ListAddressesUseCase(store.uow())(customer))
        assert [a.id for a in addresses if a.is_default] == [second.id]
        assert first.id in {a.id for a in addresses}

    def test_set_default_repairs_several_defaults(self, store, customer):
        seeded = [seed_default_address(store, customer, f"{n} Main St") for n in range(3)]

        store.run(SetDefaultAddressUseCase(store.uow())(customer, seeded[2]))

        defaults = store.scalars(select(addresses_tbl.c.id).where(addresses_tbl.c.is_default.is_(True)))
        assert defaults == [seeded[2]]

    def test_set_default_of_missing_address(self, store, customer):
        with pytest.raises(AddressNotFoundError):
            store.run(SetDefaultAddressUseCase(store.uow())(customer, "missing"))


class TestPaymentMethodLookups:
    def test_get_is_owner_scoped(self, store, customer, save_card, card):
        payment_method, _ = save_card(card())
        get = GetPaymentMethodUseCase(store.uow())

        assert store.run(get(customer, payment_method.id)).last_four == "1111"
        with pytest.raises(PaymentMethodNotFoundError, match="Payment method not found"):
            store.run(get(store.add_user("Bob"), payment_method.id))

    def test_default(self, store, customer, save_card, card):
        get_default = GetDefaultPaymentMethodUseCase(store.uow())
        save_card(card())
        with pytest.raises(PaymentMethodNotFoundError, match="No default payment method found"):
            store.run(get_default(customer))

        default, _ = save_card(card(is_default=True))

        assert store.run(get_default(customer)).id == default.id

    @pytest.mark.parametrize("saved,can_add_more,remaining", [(0, True, 5), (3, True, 2), (5, False, 0)])
    def test_limits(self, store, customer, save_card, card, saved, can_add_more, remaining):
        for _ in range(saved):
            save_card(card())

        limits = store.run(GetPaymentLimitsUseCase(store.uow(), PaymentMethodVault())(customer))

        assert (limits.current_count, limits.limit) == (saved, 5)
        assert (limits.can_add_more, limits.remaining_slots) == (can_add_more, remaining)


class TestUpdatePaymentMethod:
    def test_changes_holder_and_default(self, store, customer, save_card, card):
        first, _ = save_card(card(is_default=True))
        second, _ = save_card(card())
        update = UpdatePaymentMethodUseCase(store.uow())

        changes = PaymentMethodUpdateDTO(card_holder=" Alice B Smith ", is_default=True)

        updated = store.run(update(customer, second.id, changes))

        assert updated.card_holder == "Alice B Smith"
        assert updated.last_four == second.last_four
        methods = store.run(ListPaymentMethodsUseCase(store.uow())(customer))
        assert [m.id for m in methods if m.is_default] == [second.id]
        assert {m.id: m.card_holder for m in methods}[first.id] == "Alice Smith"

    def test_invalid_holder(self, store, customer, save_card, card):
        payment_method, _ = save_card(card())

        with pytest.raises(InvalidInputError, match="only contain letters and spaces"):
            store.run(UpdatePaymentMethodUseCase(store.uow())(
                customer, payment_method.id, PaymentMethodUpdateDTO(card_holder="R2-D2")
            ))

    def test_foreign_card(self, store, save_card, card):
        payment_method, _ = save_card(card())

        with pytest.raises(PaymentMethodNotFoundError):
            store.run(UpdatePaymentMethodUseCase(store.uow())(
                store.add_user("Bob"), payment_method.id, PaymentMethodUpdateDTO(is_default=True)
            ))


class TestAddressLifecycle:
    def test_get_is_owner_scoped(self, store, customer):
        address = store.run(SaveAddressUseCase(store.uow(), AddressBook())(customer, home()))
        get = GetAddressUseCase(store.uow())

        assert store.run(get(customer, address.id)).street == "12 Main St"
        with pytest.raises(AddressNotFoundError, match="Address not found"):
            store.run(get(store.add_user("Bob"), address.id))

    def test_partial_update(self, store, customer):
        address = store.run(SaveAddressUseCase(store.uow(), AddressBook())(customer, home()))

        updated = store.run(UpdateAddressUseCase(store.uow())(
            customer, address.id, AddressUpdateDTO(city=" Shelbyville ", address_type=AddressType.WORK)
        ))

        assert (updated.city, updated.address_type) == ("Shelbyville", AddressType.WORK)
        assert (updated.full_name, updated.zip_code) == ("Alice Smith", "62701")
        assert store.run(GetAddressUseCase(store.uow())(customer, address.id)).city == "Shelbyville"

    def test_update_cannot_blank_required_field(self, store, customer):
        address = store.run(SaveAddressUseCase(store.uow(), AddressBook())(customer, home()))

        with pytest.raises(InvalidInputError, match="City is required"):
            store.run(UpdateAddressUseCase(store.uow())(customer, address.id, AddressUpdateDTO(city="  ")))

    def test_update_cannot_duplicate_another_address(self, store, customer):
        save = SaveAddressUseCase(store.uow(), AddressBook())
        store.run(save(customer, home()))
        other = store.run(save(customer, home(street="1 Elm St")))

        with pytest.raises(InvalidInputError, match="already saved"):
            store.run(UpdateAddressUseCase(store.uow())(customer, other.id, AddressUpdateDTO(street="12 Main St")))
        assert store.run(GetAddressUseCase(store.uow())(customer, other.id)).street == "1 Elm St"

    def test_update_can_make_default(self, store, customer):
        save = SaveAddressUseCase(store.uow(), AddressBook())
        first = store.run(save(customer, home(is_default=True)))
        second = store.run(save(customer, home(street="1 Elm St")))

        store.run(UpdateAddressUseCase(store.uow())(customer, second.id, AddressUpdateDTO(is_default=True)))

        addresses = store.run(ListAddressesUseCase(store.uow())(customer))
        assert [a.id for a in addresses if a.is_default] == [second.id]
        assert first.id in {a.id for a in addresses}

    def test_delete(self, store, customer):
        address = store.run(SaveAddressUseCase(store.uow(), AddressBook())(customer, home()))
        delete = DeleteAddressUseCase(store.uow())

        with pytest.raises(AddressNotFoundError):
            store.run(delete(store.add_user("Bob"), address.id))
        store.run(delete(customer, address.id))

        assert store.count(addresses_tbl) == 0
        with pytest.raises(AddressNotFoundError):
            store.run(delete(customer, address.id))
