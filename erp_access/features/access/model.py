"""
Where the casbin model definition comes from.

The source is chosen once at startup with ``PolicyModelSource.select``. Every
enforcer build asks it for a fresh ``Model`` because casbin models hold the
loaded policy and must not be shared between enforcer instances.
"""
import abc
from pathlib import Path

from casbin.model import Model

from erp_access.utils import get_logger


log = get_logger(__name__)


DEFAULT_MODEL_TEXT = """
[request_definition]
r = sub, obj, act, org, portal, role

[policy_definition]
p = sub, obj, act

[role_definition]
g = _, _, _
g2 = _, _, _

[policy_effect]
e = some(where (p.eft == allow))

[matchers]
m = g(r.sub, r.role, r.org) && g2(r.role, p.sub, r.portal) && r.obj == p.obj && r.act == p.act
"""


class PolicyModelSource(abc.ABC):

    @abc.abstractmethod
    def load(self) -> Model:
        """Return a new, empty casbin model."""

    @abc.abstractmethod
    def describe(self) -> str:
        ...

    @staticmethod
    def select(path: str | None) -> "PolicyModelSource":
        """Use the model file when it exists, otherwise the inline default."""
        if path and Path(path).is_file():
            source: PolicyModelSource = FromFile(path)
        else:
            log.warning("Casbin model file %r not found, using inline default model", path)
            source = FromInlineDefault()
        log.info("Policy model source: %s", source.describe())
        return source


class FromFile(PolicyModelSource):

    def __init__(self, path: str):
        self.path = path

    def load(self) -> Model:
        model = Model()
        model.load_model(self.path)
        return model

    def describe(self) -> str:
        return f"file {self.path}"


class FromInlineDefault(PolicyModelSource):

    def __init__(self, text: str = DEFAULT_MODEL_TEXT):
        self.text = text

    def load(self) -> Model:
        model = Model()
        model.load_model_from_text(self.text)
        return model

    def describe(self) -> str:
        return "inline default"
