import logging
from typing import List, NamedTuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError


logger = logging.getLogger("eip_picker.provider")


class ProviderError(Exception):
    """An allocate, release or describe call was rejected or faulted."""


class Address(NamedTuple):
    ip: str
    handle: str


class ProviderClient:
    """Elastic IP calls against EC2 using caller supplied credentials.

    Every call mutates (or reads) live account state; there is no dry-run.
    """

    def __init__(self, access_key_id: str, secret_access_key: str, region: str):
        self.region = region
        self._ec2 = boto3.client(
            "ec2",
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
        )

    def allocate(self) -> Address:
        try:
            response = self._ec2.allocate_address()
        except (ClientError, BotoCoreError) as e:
            logger.error("Error allocating IP in %s: %s", self.region, e)
            raise ProviderError(str(e)) from e

        address = Address(response["PublicIp"], response["AllocationId"])
        logger.info("Successfully allocated IP: %s", address.ip)
        return address

    def release(self, address: Address) -> None:
        try:
            self._ec2.release_address(AllocationId=address.handle)
        except (ClientError, BotoCoreError) as e:
            logger.error(
                "Error releasing IP %s with Allocation ID %s: %s",
                address.ip, address.handle, e,
            )
            raise ProviderError(str(e)) from e

        logger.info("Released IP: %s with Allocation ID: %s", address.ip, address.handle)

    def describe(self) -> List[Address]:
        try:
            response = self._ec2.describe_addresses()
        except (ClientError, BotoCoreError) as e:
            logger.error("Error describing addresses in %s: %s", self.region, e)
            raise ProviderError(str(e)) from e

        return [
            Address(item["PublicIp"], item.get("AllocationId", ""))
            for item in response.get("Addresses", [])
        ]
