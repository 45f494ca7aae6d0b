import pytest

from line_relay.config.container import Container
from line_relay.services.orders.memory_orders import MemoryOrderDetails
from line_relay.services.secrets.env_secrets import EnvSecrets
from line_relay.services.secrets.interface import SecretsInterface


class NoDeps:
    def __init__(self) -> None:
        self.value = 42


class NeedsSecrets:
    def __init__(self, secrets: SecretsInterface) -> None:
        self.secrets = secrets


class OptionalSecrets:
    def __init__(self, secrets: SecretsInterface | None = None, retries: int = 3) -> None:
        self.secrets = secrets
        self.retries = retries


class MissingHint:
    def __init__(self, dep) -> None:  # noqa: ANN001
        self.dep = dep


@pytest.fixture
def secrets() -> EnvSecrets:
    return EnvSecrets(overrides={"ADMIN_SECRET": "x"})


def test_resolve_injects_registered_instance(secrets: EnvSecrets):
    container = Container()
    container.register_instance(SecretsInterface, secrets)
    assert container.resolve(NeedsSecrets).secrets is secrets


def test_resolve_no_dependencies():
    assert Container().resolve(NoDeps).value == 42


def test_defaulted_parameters_keep_their_defaults():
    obj = Container().resolve(OptionalSecrets)
    assert obj.secrets is None
    assert obj.retries == 3


def test_memory_double_resolves_without_registrations():
    orders = Container().resolve(MemoryOrderDetails)
    assert orders.orders == {}


def test_raises_on_missing_registration():
    with pytest.raises(TypeError, match="No registration found for type 'SecretsInterface'"):
        Container().resolve(NeedsSecrets)


def test_raises_on_missing_type_hint():
    with pytest.raises(TypeError, match="has no type hint"):
        Container().resolve(MissingHint)


def test_get_and_has(secrets: EnvSecrets):
    container = Container()
    assert container.has(SecretsInterface) is False
    with pytest.raises(KeyError):
        container.get(SecretsInterface)
    container.register_factory(SecretsInterface, secrets)
    assert container.has(SecretsInterface) is True
    assert container.get(SecretsInterface) is secrets
