from fastapi import APIRouter, Depends, status

from storefront.database import get_session_factory
from storefront.domain.models import User
from storefront.presentation.auth import get_current_user
from storefront.presentation.errors import http_errors
from storefront.presentation.schemas import (
    PaymentMethodEnvelope, PaymentMethodListResponse, PaymentMethodResponse, PaymentMethodsMetadata,
    PaymentLimitsEnvelope, PaymentLimitsResponse,
    AddressEnvelope, AddressListResponse, AddressResponse, MessageResponse, ErrorResponse
)
from storefront.application.payment_methods import (
    PaymentDetailsDTO, PaymentMethodUpdateDTO, PaymentMethodVault, SavePaymentMethodUseCase,
    ListPaymentMethodsUseCase, GetPaymentMethodUseCase, GetDefaultPaymentMethodUseCase, GetPaymentLimitsUseCase,
    UpdatePaymentMethodUseCase, SetDefaultPaymentMethodUseCase, DeletePaymentMethodUseCase
)
from storefront.application.addresses import (
    AddressDTO, AddressUpdateDTO, AddressBook, SaveAddressUseCase, ListAddressesUseCase, GetAddressUseCase,
    UpdateAddressUseCase, DeleteAddressUseCase, SetDefaultAddressUseCase
)
from storefront.infrastructure.unit_of_work import UnitOfWork

router = APIRouter()

ERRORS = {code: {"model": ErrorResponse} for code in (400, 401, 404, 409, 500)}


def _metadata(count: int, limit: int) -> PaymentMethodsMetadata:
    return PaymentMethodsMetadata(
        payment_methods_count=count,
        payment_methods_limit=limit,
        can_add_more=count < limit
    )


# --- Способы оплаты ---

@router.get("/payment-methods", response_model=PaymentMethodListResponse, responses=ERRORS)
async def list_payment_methods(
    user: User = Depends(get_current_user),
    session_factory=Depends(get_session_factory)
):
    with http_errors("fetching payment methods"):
        payment_methods = await ListPaymentMethodsUseCase(UnitOfWork(session_factory))(user.id)
    return PaymentMethodListResponse(
        count=len(payment_methods),
        data=[PaymentMethodResponse.from_domain(pm) for pm in payment_methods],
        metadata=_metadata(len(payment_methods), PaymentMethodVault().limit)
    )


@router.post(
    "/payment-methods",
    response_model=PaymentMethodEnvelope,
    responses=ERRORS,
    status_code=status.HTTP_201_CREATED
)
async def create_payment_method(
    request: PaymentDetailsDTO,
    user: User = Depends(get_current_user),
    session_factory=Depends(get_session_factory)
):
    vault = PaymentMethodVault()
    with http_errors("creating payment method"):
        payment_method, count = await SavePaymentMethodUseCase(UnitOfWork(session_factory), vault)(user.id, request)
    return PaymentMethodEnvelope(
        data=PaymentMethodResponse.from_domain(payment_method),
        message="Payment method added successfully",
        metadata=_metadata(count, vault.limit)
    )


# Статические пути объявлены раньше /payment-methods/{payment_method_id}

@router.get("/payment-methods/limits", response_model=PaymentLimitsEnvelope, responses=ERRORS)
async def get_payment_limits(
    user: User = Depends(get_current_user),
    session_factory=Depends(get_session_factory)
):
    with http_errors("fetching payment limits"):
        limits = await GetPaymentLimitsUseCase(UnitOfWork(session_factory), PaymentMethodVault())(user.id)
    return PaymentLimitsEnvelope(data=PaymentLimitsResponse.from_domain(limits))


@router.get("/payment-methods/default", response_model=PaymentMethodEnvelope, responses=ERRORS)
async def get_default_payment_method(
    user: User = Depends(get_current_user),
    session_factory=Depends(get_session_factory)
):
    with http_errors("fetching default payment method"):
        payment_method = await GetDefaultPaymentMethodUseCase(UnitOfWork(session_factory))(user.id)
    return PaymentMethodEnvelope(data=PaymentMethodResponse.from_domain(payment_method))


@router.get("/payment-methods/{payment_method_id}", response_model=PaymentMethodEnvelope, responses=ERRORS)
async def get_payment_method(
    payment_method_id: str,
    user: User = Depends(get_current_user),
    session_factory=Depends(get_session_factory)
):
    with http_errors("fetching payment method"):
        payment_method = await GetPaymentMethodUseCase(UnitOfWork(session_factory))(user.id, payment_method_id)
    return PaymentMethodEnvelope(data=PaymentMethodResponse.from_domain(payment_method))


@router.put("/payment-methods/{payment_method_id}", response_model=PaymentMethodEnvelope, responses=ERRORS)
async def update_payment_method(
    payment_method_id: str,
    request: PaymentMethodUpdateDTO,
    user: User = Depends(get_current_user),
    session_factory=Depends(get_session_factory)
):
    with http_errors("updating payment method"):
        payment_method = await UpdatePaymentMethodUseCase(UnitOfWork(session_factory))(
            user.id, payment_method_id, request
        )
    return PaymentMethodEnvelope(
        data=PaymentMethodResponse.from_domain(payment_method),
        message="Payment method updated successfully"
    )


@router.put("/payment-methods/{payment_method_id}/default", response_model=PaymentMethodEnvelope, responses=ERRORS)
async def set_default_payment_method(
    payment_method_id: str,
    user: User = Depends(get_current_user),
    session_factory=Depends(get_session_factory)
):
    with http_errors("setting default payment method"):
        payment_method = await SetDefaultPaymentMethodUseCase(UnitOfWork(session_factory))(user.id, payment_method_id)
    return PaymentMethodEnvelope(
        data=PaymentMethodResponse.from_domain(payment_method),
        message="Default payment method updated"
    )


@router.delete("/payment-methods/{payment_method_id}", response_model=MessageResponse, responses=ERRORS)
async def delete_payment_method(
    payment_method_id: str,
    user: User = Depends(get_current_user),
    session_factory=Depends(get_session_factory)
):
    with http_errors("deleting payment method"):
        await DeletePaymentMethodUseCase(UnitOfWork(session_factory))(user.id, payment_method_id)
    return MessageResponse(message="Payment method deleted successfully")


# --- Адреса ---

@router.get("/addresses", response_model=AddressListResponse, responses=ERRORS)
async def list_addresses(
    user: User = Depends(get_current_user),
    session_factory=Depends(get_session_factory)
):
    with http_errors("fetching addresses"):
        addresses = await ListAddressesUseCase(UnitOfWork(session_factory))(user.id)
    return AddressListResponse(count=len(addresses), data=[AddressResponse.from_domain(a) for a in addresses])


@router.post("/addresses", response_model=AddressEnvelope, responses=ERRORS, status_code=status.HTTP_201_CREATED)
async def create_address(
    request: AddressDTO,
    user: User = Depends(get_current_user),
    session_factory=Depends(get_session_factory)
):
    with http_errors("creating address"):
        address = await SaveAddressUseCase(UnitOfWork(session_factory), AddressBook())(user.id, request)
    return AddressEnvelope(data=AddressResponse.from_domain(address), message="Address saved successfully")


@router.put("/addresses/{address_id}/default", response_model=AddressEnvelope, responses=ERRORS)
async def set_default_address(
    address_id: str,
    user: User = Depends(get_current_user),
    session_factory=Depends(get_session_factory)
):
    with http_errors("setting default address"):
        address = await SetDefaultAddressUseCase(UnitOfWork(session_factory))(user.id, address_id)
    return AddressEnvelope(data=AddressResponse.from_domain(address), message="Default address updated")


@router.get("/addresses/{address_id}", response_model=AddressEnvelope, responses=ERRORS)
async def get_address(
    address_id: str,
    user: User = Depends(get_current_user),
    session_factory=Depends(get_session_factory)
):
    with http_errors("fetching address"):
        address = await GetAddressUseCase(UnitOfWork(session_factory))(user.id, address_id)
    return AddressEnvelope(data=AddressResponse.from_domain(address))


@router.put("/addresses/{address_id}", response_model=AddressEnvelope, responses=ERRORS)
async def update_address(
    address_id: str,
    request: AddressUpdateDTO,
    user: User = Depends(get_current_user),
    session_factory=Depends(get_session_factory)
):
    with http_errors("updating address"):
        address = await UpdateAddressUseCase(UnitOfWork(session_factory))(user.id, address_id, request)
    return AddressEnvelope(data=AddressResponse.from_domain(address), message="Address updated successfully")


@router.delete("/addresses/{address_id}", response_model=MessageResponse, responses=ERRORS)
async def delete_address(
    address_id: str,
    user: User = Depends(get_current_user),
    session_factory=Depends(get_session_factory)
):
    with http_errors("deleting address"):
        await DeleteAddressUseCase(UnitOfWork(session_factory))(user.id, address_id)
    return MessageResponse(message="Address deleted successfully")
