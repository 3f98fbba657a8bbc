import unittest
from typing import Annotated, Protocol
from unittest.mock import MagicMock

from microinject import Container, Inject, post_construct, singleton


class Contains:  # noqa: PLW1641
    def __init__(self, substring):
        self.substring = substring

    def __repr__(self):
        return f"Contains({self.substring!r})"

    def __eq__(self, other):
        return isinstance(other, str) and self.substring in other


class PaymentClient(Protocol):
    def charge(self, order_id: str, amount_cents: int) -> None: ...


class InfoLogger(Protocol):
    def info(self, msg: object, *args: object) -> None: ...


class NullLogger:
    def info(self, msg: object, *args: object) -> None:
        pass


@singleton
class Rates:
    usd_per_cent = 0.01


class StripeSdk:
    def pay(self, amount_usd: float, reference: str) -> bool:
        return True


class StripeAdapter:
    sdk: Annotated[StripeSdk, Inject]
    logger: Annotated[InfoLogger, Inject]
    rates: Annotated[Rates, Inject]

    @post_construct
    def announce(self) -> None:
        self.logger.info("stripe adapter ready")

    def charge(self, order_id: str, amount_cents: int) -> None:
        self.logger.info("adapting to stripe sdk api")
        amount_usd = amount_cents * self.rates.usd_per_cent
        ok = self.sdk.pay(amount_usd, reference=order_id)
        if not ok:
            msg = "Stripe payment failed"
            raise RuntimeError(msg)


class TestWiringAdapterThirdPartySDK(unittest.TestCase):
    cont: Container

    def setUp(self):
        self.cont = Container()
        self.cont.bind_interface(PaymentClient, StripeAdapter)
        self.stripe_sdk = StripeSdk()
        self.stripe_sdk.pay = MagicMock(wraps=self.stripe_sdk.pay)
        self.cont.bind_instance(StripeSdk, self.stripe_sdk)
        self.logger = NullLogger()
        self.logger.info = MagicMock(wraps=self.logger.info)
        self.cont.bind_instance(InfoLogger, self.logger)

    def test_adapter_calls_adaptee(self):
        self.cont.get_instance(Rates).usd_per_cent = 0.0125

        client: PaymentClient = self.cont.get_instance(PaymentClient)
        client.charge("order-123", 5000)

        assert self.stripe_sdk.pay.call_count == 1
        assert self.stripe_sdk.pay.call_args[0][0] == 0.0125 * 5000
        assert self.stripe_sdk.pay.call_args[1]["reference"] == "order-123"

        assert self.logger.info.call_args[0][0] == Contains("stripe sdk")

    def test_adapter_announces_itself_once(self):
        self.cont.get_instance(PaymentClient)

        assert self.logger.info.call_count == 1
        assert self.logger.info.call_args[0][0] == Contains("ready")


class TestAutoWiringAdapterThirdPartySDK(unittest.TestCase):
    cont: Container

    def setUp(self):
        self.cont = Container()
        self.cont.bind_interface(PaymentClient, StripeAdapter)
        self.cont.bind_interface(InfoLogger, NullLogger)

    def test_adapter_calls_adaptee(self):
        client: PaymentClient = self.cont.get_instance(PaymentClient)
        client.charge("order-123", 5000)

        assert isinstance(client.sdk, StripeSdk)
        assert isinstance(client.logger, NullLogger)
        assert client.rates is self.cont.get_instance(Rates)
