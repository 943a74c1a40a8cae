import pytest
from botocore.stub import Stubber

from eip_picker.provider import Address, ProviderClient, ProviderError


@pytest.fixture
def client():
    provider = ProviderClient("AKIDEXAMPLE", "secret", "us-east-1")
    with Stubber(provider._ec2) as stubber:
        yield provider, stubber
        stubber.assert_no_pending_responses()


def test_allocate_returns_ip_and_handle(client):
    provider, stubber = client
    stubber.add_response(
        "allocate_address",
        {"PublicIp": "43.204.6.10", "AllocationId": "eipalloc-1"},
        {},
    )

    assert provider.allocate() == Address("43.204.6.10", "eipalloc-1")


def test_allocate_error_is_wrapped(client):
    provider, stubber = client
    stubber.add_client_error(
        "allocate_address",
        service_error_code="AddressLimitExceeded",
        service_message="The maximum number of addresses has been reached.",
    )

    with pytest.raises(ProviderError):
        provider.allocate()


def test_release_uses_allocation_id(client):
    provider, stubber = client
    stubber.add_response("release_address", {}, {"AllocationId": "eipalloc-7"})

    provider.release(Address("3.3.3.3", "eipalloc-7"))


def test_release_error_is_wrapped(client):
    provider, stubber = client
    stubber.add_client_error("release_address", service_error_code="InvalidAllocationID.NotFound")

    with pytest.raises(ProviderError):
        provider.release(Address("3.3.3.3", "eipalloc-7"))


def test_describe_lists_held_addresses(client):
    provider, stubber = client
    stubber.add_response(
        "describe_addresses",
        {"Addresses": [
            {"PublicIp": "43.204.6.10", "AllocationId": "eipalloc-1"},
            {"PublicIp": "52.1.1.1", "AllocationId": "eipalloc-2"},
        ]},
        {},
    )

    assert provider.describe() == [
        Address("43.204.6.10", "eipalloc-1"),
        Address("52.1.1.1", "eipalloc-2"),
    ]
