"""
Inventory test factories.

Request bodies for parts, toners and devices, plus claim/request details.
"""

import factory
from faker import Faker

fake = Faker()

DEVICE_MODELS = ["bizhub C300i", "bizhub C450i", "bizhub 4020i", "AccurioPrint C4065", "bizhub C3320i"]


class PartFactory(factory.Factory):
    """
    Body for POST /items creating a part.

    Usage:
        body = PartFactory()
        body = PartFactory(quantity=5)
    """

    class Meta:
        model = dict

    kind = "PART"
    name = factory.LazyFunction(
        lambda: fake.random_element(["Fuser Unit", "Transfer Belt", "Drum Unit", "Pickup Roller", "Waste Toner Box"])
    )
    part_number = factory.Sequence(lambda n: f"A{n:03d}R{fake.random_int(100, 999)}00")
    quantity = 1
    for_device_models = factory.LazyFunction(lambda: fake.random_elements(DEVICE_MODELS, length=2, unique=True))


class TonerFactory(factory.Factory):
    class Meta:
        model = dict

    kind = "TONER"
    model = factory.LazyFunction(lambda: f"TN-{fake.random_int(200, 799)}")
    edp_code = factory.Sequence(lambda n: f"ACV{n:04d}")
    color = factory.LazyFunction(lambda: fake.random_element(["BLACK", "CYAN", "MAGENTA", "YELLOW"]))
    page_yield = factory.LazyFunction(lambda: fake.random_element([12000, 26000, 28000]))
    quantity = 1
    for_device_models = factory.LazyFunction(lambda: fake.random_elements(DEVICE_MODELS, length=1, unique=True))


class DeviceFactory(factory.Factory):
    class Meta:
        model = dict

    model = factory.LazyFunction(lambda: fake.random_element(DEVICE_MODELS))
    serial_number = factory.LazyFunction(lambda: fake.bothify("A##?######").upper())
    customer_name = factory.LazyFunction(fake.company)
    condition = factory.LazyFunction(lambda: fake.random_element(["GOOD", "FAIR", "POOR"]))
    comments = factory.LazyFunction(lambda: fake.sentence(nb_words=6))


class ClaimDetailsFactory(factory.Factory):
    class Meta:
        model = dict

    serial_number = factory.LazyFunction(lambda: fake.bothify("A##?######").upper())
    client = factory.LazyFunction(fake.company)
    meter_reading = factory.LazyFunction(lambda: fake.random_int(1000, 500000))


class RequestDetailsFactory(factory.Factory):
    class Meta:
        model = dict

    client = factory.LazyFunction(fake.company)
    device_serial = factory.LazyFunction(lambda: fake.bothify("A##?######").upper())
    quantity = 1
